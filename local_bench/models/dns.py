"""Data model for dnsmasq address mappings."""

from pydantic import BaseModel, field_validator


class DomainMapping(BaseModel):
    """One ``address=/<domain>/<ip>`` line of dnsmasq configuration."""

    domain: str
    ip: str

    @field_validator("domain", "ip")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate domain and ip are not empty."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @property
    def prefix(self) -> str:
        """Prefix shared by every active line for this domain."""
        return f"address=/{self.domain}/"

    @property
    def line(self) -> str:
        """The full configuration line."""
        return f"{self.prefix}{self.ip}"

    def matches(self, line: str) -> bool:
        """Return True if ``line`` is an active mapping for this domain."""
        stripped = line.strip()
        if stripped.startswith("#"):
            return False
        return stripped.startswith(self.prefix)
