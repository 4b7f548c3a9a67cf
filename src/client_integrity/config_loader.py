from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml  # type: ignore[import-untyped]

from .normalization import FALLBACK_YEAR_MAX, FALLBACK_YEAR_MIN


@dataclass
class OutputsConfig:
    dir: Optional[Path] = None


@dataclass
class StoreConfig:
    path: Path = Path("clients.json")


@dataclass
class ImportConfig:
    header_variants: Dict[str, List[str]] = field(default_factory=dict)
    fallback_year_min: int = FALLBACK_YEAR_MIN
    fallback_year_max: int = FALLBACK_YEAR_MAX
    sheet_name: Union[int, str] = 0


@dataclass
class RelationshipsConfig:
    reciprocal_types: Dict[str, str] = field(default_factory=dict)


DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: str = DEFAULT_LOG_FORMAT


@dataclass
class PipelineConfig:
    inputs: Dict[str, Optional[str]]
    store: StoreConfig
    outputs: OutputsConfig
    import_: ImportConfig
    relationships: RelationshipsConfig
    logging: LoggingConfig


def _load_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_pipeline_config(args: argparse.Namespace) -> PipelineConfig:
    config_data = _load_yaml(getattr(args, "config", None))
    inputs = config_data.get("inputs", {}) or {}
    store_cfg = config_data.get("store", {}) or {}
    outputs_cfg = config_data.get("outputs", {}) or {}
    import_cfg = config_data.get("import", {}) or {}
    relationships_cfg = config_data.get("relationships", {}) or {}
    logging_cfg = config_data.get("logging", {}) or {}

    out_dir = getattr(args, "out_dir", None) or outputs_cfg.get("dir")
    outputs = OutputsConfig(dir=Path(out_dir) if out_dir else None)

    store_path = getattr(args, "store", None) or store_cfg.get("path") or os.path.join(
        os.getcwd(), "clients.json"
    )
    store = StoreConfig(path=Path(store_path))

    header_variants = {
        str(field_name): [str(variant) for variant in (variants or [])]
        for field_name, variants in (import_cfg.get("header_variants", {}) or {}).items()
    }
    sheet_name = getattr(args, "sheet_name", None) or import_cfg.get("sheet_name", 0)
    if isinstance(sheet_name, str) and sheet_name.isdigit():
        sheet_name = int(sheet_name)

    import_config = ImportConfig(
        header_variants=header_variants,
        fallback_year_min=int(import_cfg.get("fallback_year_min", FALLBACK_YEAR_MIN)),
        fallback_year_max=int(import_cfg.get("fallback_year_max", FALLBACK_YEAR_MAX)),
        sheet_name=sheet_name,
    )

    relationships = RelationshipsConfig(
        reciprocal_types={
            str(key): str(value)
            for key, value in (relationships_cfg.get("reciprocal_types", {}) or {}).items()
        }
    )

    arg_level = getattr(args, "log_level", None)
    effective_level = (arg_level or logging_cfg.get("level") or "WARNING").upper()
    logging_config = LoggingConfig(
        level=effective_level, format=str(logging_cfg.get("format") or DEFAULT_LOG_FORMAT)
    )

    resolved_inputs = {
        "rows_file": getattr(args, "rows_file", None) or inputs.get("rows_file"),
    }

    return PipelineConfig(
        inputs=resolved_inputs,
        store=store,
        outputs=outputs,
        import_=import_config,
        relationships=relationships,
        logging=logging_config,
    )
