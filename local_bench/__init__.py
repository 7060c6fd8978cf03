"""Local Kubernetes development bench: kind cluster, load balancer and dnsmasq wiring."""

__version__ = "0.1.0"
