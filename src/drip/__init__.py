"""DRIP - Dispense gateway for the Nyks chain faucet."""

__version__ = "0.1.0"
