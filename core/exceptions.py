# --- Provisioning ---
class ProvisioningError(Exception):
    """A provisioning step failed; the run is aborted without cleanup."""
    pass


class DiskCreationError(ProvisioningError):
    """Working directory or overlay disk could not be created."""
    pass


class CloudInitError(ProvisioningError):
    """Cloud-init documents or the seed ISO could not be produced."""
    pass


class VmInstallError(ProvisioningError):
    """virt-install failed to define or boot the domain."""
    pass


class DefinitionBackupError(ProvisioningError):
    """The domain XML could not be dumped to the working directory."""
    pass


# --- Hypervisor ---
class HypervisorConnectionError(Exception):
    """libvirt connection could not be opened."""
    pass
