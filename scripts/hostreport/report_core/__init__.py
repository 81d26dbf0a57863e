"""Host memory, NIC and provisioning reports for virtualization hosts."""

__version__ = "1.0.0"
