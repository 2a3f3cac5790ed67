from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, FilePath, field_validator

from config.settings import (
    DEFAULT_BRIDGE,
    DEFAULT_MEMORY_MB,
    DEFAULT_STORAGE_GB,
    DEFAULT_VCPU,
)

MAC_PATTERN = r"^([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}$"
HOSTNAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9-]*$"


class VMSpecSchema(BaseModel):
    """
    Validated parameters of a VM to provision.

    'hostname' already carries the random suffix. Both paths must point at
    existing files; the model is frozen once built and consumed by a single
    provisioning run.
    """

    model_config = ConfigDict(frozen=True)

    hostname: str = Field(..., pattern=HOSTNAME_PATTERN, description="Final VM / domain name")
    base_image: FilePath = Field(..., description="Cloud image used as backing file")
    pubkey_file: FilePath = Field(..., description="File with SSH public keys, one per line")
    memory_mb: int = Field(DEFAULT_MEMORY_MB, ge=1, description="RAM in MiB")
    vcpus: int = Field(DEFAULT_VCPU, ge=1, description="Number of virtual CPUs")
    storage_gb: int = Field(DEFAULT_STORAGE_GB, ge=1, description="Overlay disk size in GiB")
    bridge: str = Field(DEFAULT_BRIDGE, min_length=1, description="Host bridge for the NIC")
    mac: str | None = Field(default=None, pattern=MAC_PATTERN, description="Fixed NIC MAC")

    @field_validator("mac")
    @classmethod
    def _lowercase_mac(cls, value: str | None) -> str | None:
        return value.lower() if value else value


class HostMapping(BaseModel):
    """One /etc/hosts entry maintained by the registrar."""

    name: str
    ip: str
    mac: str

    def to_hosts_line(self) -> str:
        return f"{self.ip}\t{self.name}\t# {self.mac}"


class RegistrationResult(BaseModel):
    name: str
    mac: str | None = None
    ip: str | None = None
    source: Literal["capture", "lease"] | None = None

    @property
    def resolved(self) -> bool:
        return self.ip is not None
