from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from strata.errors import SpecError

OPTIONS_VERSION = 1


class _Options(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SnapshotExposure(_Options):
    enabled: bool = False
    mode: str = ""
    format: str = ""
    local_time: Optional[bool] = None


class TimeMachine(_Options):
    enabled: bool = False
    advertise_as_time_machine: Optional[bool] = None
    volume_size_limit_bytes: Optional[int] = None


class AutoPermissions(_Options):
    enabled: bool = True
    mode: str = "0777"
    recursive: bool = False

    @field_validator("mode", mode="before")
    @classmethod
    def _mode_as_text(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "0777"
        return str(v).strip()


class SMBShareOptions(_Options):
    """Typed share options. Raw option maps are parsed into this once, at the edge."""

    version: int = OPTIONS_VERSION
    macos_compat: bool = False
    encryption: Optional[Literal["disabled", "desired", "required"]] = None
    browseable: Optional[bool] = None
    guest_ok: Optional[bool] = None
    valid_users: List[str] = []
    write_list: List[str] = []
    create_mask: Optional[str] = None
    directory_mask: Optional[str] = None
    inherit_perms: Optional[bool] = None
    global_options: Dict[str, str] = {}
    snapshot_exposure: Optional[SnapshotExposure] = None
    time_machine: Optional[TimeMachine] = None
    auto_permissions: Optional[Union[bool, AutoPermissions]] = None

    @field_validator("encryption", mode="before")
    @classmethod
    def _fold_encryption(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @field_validator("create_mask", "directory_mask", mode="before")
    @classmethod
    def _mask_as_text(cls, v):
        return None if v is None else str(v).strip()

    @field_validator("global_options", mode="before")
    @classmethod
    def _drop_blank_globals(cls, v):
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items() if val is not None and str(val).strip()}
        return v

    def permissions(self) -> Optional[AutoPermissions]:
        """Resolved auto-permission fix-up, or None when disabled."""
        value = self.auto_permissions
        if value is None or value is False:
            return None
        if value is True:
            return AutoPermissions()
        return value if value.enabled else None


def parse_share_options(raw: Optional[Dict[str, Any]]) -> SMBShareOptions:
    if isinstance(raw, SMBShareOptions):
        return raw
    try:
        options = SMBShareOptions.model_validate(raw or {})
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise SpecError(f"invalid share options: {problems}")
    if options.version > OPTIONS_VERSION:
        raise SpecError(f"unsupported share options version {options.version}")
    return options
