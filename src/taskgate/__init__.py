"""taskgate: request decomposition, agent routing and gatekeeper-audited delivery."""

__version__ = "0.1.0"
