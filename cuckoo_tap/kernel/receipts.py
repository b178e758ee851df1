"""
Install receipts: what was placed where, from which descriptor.
"""
import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cuckoo_tap.internal.constants import SMOKE_TEST_TIMEOUT
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.errors import ReceiptError

logger = get_logger(__name__)


@dataclass
class InstallReceipt:
    name: str
    variant: str
    source_location: str
    integrity_hash: str
    binary_path: str
    smoke_args: list[str] = field(default_factory=list)
    smoke_timeout: float = SMOKE_TEST_TIMEOUT
    version: Optional[str] = None
    installed_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    verified: Optional[bool] = None


class ReceiptStore:
    """
    One JSON file per installed formula, under <prefix>/var/cuckoo-tap/receipts.
    """

    def __init__(self, receipts_dir: Path):
        self._dir = receipts_dir

    def _path(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    def save(self, receipt: InstallReceipt) -> Path:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(receipt.name)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(asdict(receipt), indent=2), encoding="utf-8")
        tmp.replace(path)
        logger.debug("Receipt saved", name=receipt.name, path=str(path))
        return path

    def load(self, name: str) -> Optional[InstallReceipt]:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ReceiptError(f"Receipt for {name} is not valid JSON: {path}: {e}") from e
        if not isinstance(data, dict):
            raise ReceiptError(f"Receipt for {name} is not a JSON object: {path}")

        # Receipts written by newer versions may carry extra keys.
        known = {item.name for item in fields(InstallReceipt)}
        try:
            return InstallReceipt(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise ReceiptError(f"Receipt for {name} is incomplete: {path}: {e}") from e

    def list(self) -> list[InstallReceipt]:
        if not self._dir.is_dir():
            return []
        receipts = []
        for path in sorted(self._dir.glob("*.json")):
            receipt = self.load(path.stem)
            if receipt:
                receipts.append(receipt)
        return receipts

    def remove(self, name: str) -> bool:
        path = self._path(name)
        if path.exists():
            path.unlink()
            logger.debug("Receipt removed", name=name, path=str(path))
            return True
        return False
