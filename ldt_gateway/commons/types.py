import os
import sys
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class LabInfo(BaseModel):
    name: str = "Labor Results System"
    street: str = "Medical Center Street 1"
    zip_code: str = "12345"
    city: str = "Medical City"
    phone: str = "+49-123-456789"
    email: str = "info@laborresults.de"


class GateCfg(BaseModel):
    secret: str = ""
    timestamp_tolerance_sec: int = 300
    replay_ttl_sec: int = 600
    rate_limit_per_minute: int = 60
    allowed_sources: List[str] = []  # IPs o CIDR; vacio = sin restriccion
    processing_timeout_sec: float = 10.0


class ParsersCfg(BaseModel):
    autodetect: bool = True
    override: Literal["", "WRAPPED", "LINES"] = ""
    strict_record_types: bool = False

    @field_validator("override", mode="before")
    @classmethod
    def _upper(cls, v):
        return (v or "").strip().upper()


class TransportCfg(BaseModel):
    file: Dict[str, Any] = {"filename_glob": "*.ldt"}
    export: Dict[str, Any] = {"filename_pattern": "export_{timestamp}_{uuid}.ldt"}
    http: Dict[str, Any] = {"host": "0.0.0.0", "port": 5000}


class PathsCfg(BaseModel):
    logs_root: str = "logs"
    inbox: str = "data/inbox"
    archive: str = "data/archive"
    error: str = "data/error"
    outbox: str = "data/outbox"
    raw_store: Optional[str] = None  # None = store en memoria


class Settings(BaseModel):
    paths: PathsCfg = Field(default_factory=PathsCfg)
    gate: GateCfg = Field(default_factory=GateCfg)
    parsers: ParsersCfg = Field(default_factory=ParsersCfg)
    transport: TransportCfg = Field(default_factory=TransportCfg)
    lab: LabInfo = Field(default_factory=LabInfo)
    recipients_file: Optional[str] = None
    default_test_type: str = "LDT Import"


DEFAULT_SETTINGS_PATH = "ldt_gateway/configs/settings.yaml"


def resource_path(relative_path: str) -> str:
    """Ruta absoluta a un recurso, ejecutando como .exe (PyInstaller) o en desarrollo"""
    base_path = getattr(sys, "_MEIPASS", os.path.abspath("."))
    return os.path.join(base_path, relative_path)


def load_settings(path: Optional[str] = None) -> Settings:
    config_path = resource_path(path or os.getenv("LDT_SETTINGS", DEFAULT_SETTINGS_PATH))
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    settings = Settings(**data)
    # El secreto nunca deberia vivir en el YAML versionado
    secret = os.getenv("LDT_WEBHOOK_SECRET")
    if secret:
        settings.gate.secret = secret
    return settings
