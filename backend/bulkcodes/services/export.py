from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Any, Sequence

import structlog

logger = structlog.get_logger(__name__)

CSV_PREFIX = "surecart-promo-codes-"
FULL_HEADER = ["campaign", "code", "type", "value", "currency", "coupon_id", "promotion_id"]
CODES_HEADER = ["code"]
MAX_NAME_ATTEMPTS = 100


class ExportMode(str, Enum):
    FULL = "full"
    CODES = "codes"
    BOTH = "both"

    @classmethod
    def parse(cls, value: str | ExportMode | None) -> ExportMode:
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FULL

    @property
    def wants_full(self) -> bool:
        return self in (ExportMode.FULL, ExportMode.BOTH)

    @property
    def wants_codes(self) -> bool:
        return self in (ExportMode.CODES, ExportMode.BOTH)


class ExportError(RuntimeError):
    pass


@dataclass(frozen=True)
class FullRow:
    campaign: str
    code: str
    discount_type: str
    value: Any
    currency: str
    coupon_id: str
    promotion_id: str

    def as_list(self) -> list[Any]:
        return [
            self.campaign,
            self.code,
            self.discount_type,
            self.value,
            self.currency,
            self.coupon_id,
            self.promotion_id,
        ]


def export_stamp(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y%m%d-%H%M%S")


def export_filename(kind: str, stamp: str, attempt: int = 1) -> str:
    suffix = f"-{attempt}" if attempt > 1 else ""
    return f"{CSV_PREFIX}{kind}-{stamp}{suffix}.csv"


class CsvSink:
    def __init__(self, path: Path, header: Sequence[str]) -> None:
        self.path = path
        self.rows = 0
        try:
            self._handle: IO[str] | None = path.open("x", newline="", encoding="utf-8")
        except FileExistsError:
            raise
        except OSError as exc:
            raise ExportError(f"Could not create CSV file {path.name}.") from exc
        self._writer = csv.writer(self._handle)
        self._writer.writerow(header)

    def write(self, row: Sequence[Any]) -> None:
        self._writer.writerow(row)
        self.rows += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.flush()
            self._handle.close()
            self._handle = None


@dataclass
class ExportWriters:
    """The writers of one run; only those selected by the export mode are open."""

    full: CsvSink | None = None
    codes: CsvSink | None = None
    paths: dict[str, Path] = field(default_factory=dict)

    @classmethod
    def open(
        cls,
        directory: str | Path,
        mode: str | ExportMode,
        *,
        now: datetime | None = None,
    ) -> ExportWriters:
        export_mode = ExportMode.parse(mode)
        target = Path(directory)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(f"Could not create export directory {target}.") from exc
        stamp = export_stamp(now)

        # runs within the same second get a numeric suffix instead of overwriting
        for attempt in range(1, MAX_NAME_ATTEMPTS + 1):
            writers = cls()
            try:
                if export_mode.wants_full:
                    writers.full = CsvSink(target / export_filename("full", stamp, attempt), FULL_HEADER)
                    writers.paths["full"] = writers.full.path
                if export_mode.wants_codes:
                    writers.codes = CsvSink(target / export_filename("codes", stamp, attempt), CODES_HEADER)
                    writers.paths["codes"] = writers.codes.path
            except FileExistsError:
                writers.discard()
                continue
            except ExportError:
                writers.discard()
                raise
            return writers
        raise ExportError(f"Could not find a free export file name for {stamp}.")

    def write(self, row: FullRow) -> None:
        if self.full is not None:
            self.full.write(row.as_list())
        if self.codes is not None:
            self.codes.write([row.code])

    def close(self) -> None:
        for sink in (self.full, self.codes):
            if sink is not None:
                sink.close()

    def discard(self) -> None:
        self.close()
        for path in self.paths.values():
            path.unlink(missing_ok=True)
        self.paths.clear()

    def __enter__(self) -> ExportWriters:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _is_export(path: Path, base: Path) -> bool:
    return (
        path.is_file()
        and path.parent.resolve() == base
        and path.name.startswith(CSV_PREFIX)
        and path.suffix == ".csv"
    )


def list_exports(directory: str | Path) -> list[Path]:
    base = Path(directory)
    if not base.is_dir():
        return []
    resolved = base.resolve()
    files = [path for path in base.glob(f"{CSV_PREFIX}*.csv") if _is_export(path, resolved)]
    return sorted(files, key=lambda path: path.name, reverse=True)


def find_export(directory: str | Path, name: str) -> Path | None:
    base = Path(directory)
    if not base.is_dir() or Path(name).name != name:
        return None
    candidate = base / name
    if _is_export(candidate, base.resolve()):
        return candidate
    return None


def delete_exports(directory: str | Path) -> int:
    deleted = 0
    for path in list_exports(directory):
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("export_delete_failed", file=path.name, error=str(exc))
            continue
        deleted += 1
    logger.info("exports_deleted", directory=str(directory), deleted=deleted)
    return deleted
