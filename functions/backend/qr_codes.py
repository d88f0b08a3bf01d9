"""
QR codes, shareable links and deep links for SIFs.
"""

from __future__ import annotations

import io
import json
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional
from urllib.parse import urlparse

import qrcode
from dacite import Config, DaciteError, from_dict
from PIL import Image, ImageDraw
from qrcode.constants import ERROR_CORRECT_H

from backend.db import DbClient
from backend.notifications import NotificationService
from backend.storage import StorageClient
from shared import constants
from shared.doc_convert import from_document, to_payload
from shared.firebase_constants import SIFS_COLLECTION
from shared.json_utils import convert_keys
from shared.sif import QRCodeData, SIFItem

logger = logging.getLogger(__name__)

BRAND_BLUE = (0, 122, 255)
LOGO_FRACTION = 0.2
LOGO_MARGIN = 5

# Scanned payloads come from outside, so their field types are checked. JSON
# integers are accepted where a float is expected.
QR_PAYLOAD_CONFIG = Config(
    check_types=True,
    type_hooks={
        float: lambda v: float(v)
        if isinstance(v, int) and not isinstance(v, bool)
        else v
    },
)


@dataclass
class QRCodeResult:
    sif: Optional[SIFItem] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.sif is not None


class DeepLinkKind(StrEnum):
    SIF = "sif"
    SHARE = "share"
    ERROR = "error"
    UNSUPPORTED = "unsupported"


@dataclass
class DeepLinkResult:
    kind: DeepLinkKind
    sif: Optional[SIFItem] = None
    error: Optional[str] = None


def _render(payload: str, size: int) -> Image.Image:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=2)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").get_image()
    return image.convert("RGB").resize((size, size), Image.NEAREST)


def _png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class QRCodeService:
    def __init__(
        self,
        db: DbClient,
        storage: Optional[StorageClient] = None,
        notifications: Optional[NotificationService] = None,
        *,
        share_base_url: str = constants.SHARE_BASE_URL,
    ):
        self.db = db
        self.storage = storage
        self.notifications = notifications
        self.share_base_url = share_base_url.rstrip("/")

    # --- Generation ----------------------------------------------------

    def create_qr_code_data(self, sif: SIFItem) -> str:
        data = QRCodeData(
            sif_id=sif.id,
            url=f"{self.share_base_url}/sif/{sif.id}",
            subject=sif.subject,
            author_uid=sif.author_uid,
            created_date=sif.created_date,
            expiration_date=sif.expiration_date,
        )
        return json.dumps(to_payload(data), separators=(",", ":"))

    def generate_qr_code(self, sif: SIFItem, size: int = constants.QR_CODE_SIZE) -> bytes:
        return _png(_render(self.create_qr_code_data(sif), size))

    def generate_styled_qr_code(
        self, sif: SIFItem, with_logo: bool = True, size: int = constants.QR_CODE_SIZE
    ) -> bytes:
        image = _render(self.create_qr_code_data(sif), size)
        if with_logo:
            draw = ImageDraw.Draw(image)
            logo = int(size * LOGO_FRACTION)
            left = (size - logo) // 2
            box = (left, left, left + logo, left + logo)
            draw.ellipse(
                (
                    box[0] - LOGO_MARGIN,
                    box[1] - LOGO_MARGIN,
                    box[2] + LOGO_MARGIN,
                    box[3] + LOGO_MARGIN,
                ),
                fill="white",
            )
            draw.ellipse(box, fill=BRAND_BLUE)
        return _png(image)

    def store_qr_code(self, sif: SIFItem, styled: bool = True) -> str:
        """Upload the QR code image next to the SIF and record its URL."""
        if self.storage is None:
            raise RuntimeError("Storage is not configured")
        png = self.generate_styled_qr_code(sif) if styled else self.generate_qr_code(sif)
        url = self.storage.upload_bytes(
            f"sifs/{sif.id}/qr_code.png", png, content_type="image/png"
        )
        self.db.update(SIFS_COLLECTION, sif.id, {"qrCodeImageUrl": url})
        return url

    def generate_shareable_url(self, sif: SIFItem) -> str:
        return f"{self.share_base_url}/share/{sif.id}"

    def generate_deep_link_url(self, sif: SIFItem) -> str:
        return f"{constants.DEEP_LINK_SCHEME}://sif/{sif.id}"

    # --- Scanning ------------------------------------------------------

    def _fetch(self, sif_id: str) -> Optional[SIFItem]:
        data = self.db.get(SIFS_COLLECTION, sif_id)
        if data is None:
            return None
        return from_document(SIFItem, sif_id, data)

    @staticmethod
    def parse_qr_code_data(code: str) -> Optional[QRCodeData]:
        try:
            raw = json.loads(code)
        except ValueError:
            return None
        if not isinstance(raw, dict):
            return None
        try:
            return from_dict(
                data_class=QRCodeData,
                data=convert_keys(raw, "camel_to_snake"),
                config=QR_PAYLOAD_CONFIG,
            )
        except DaciteError:
            return None

    def process_scanned_code(
        self,
        code: str,
        scanner_uid: Optional[str] = None,
        now: Optional[float] = None,
    ) -> QRCodeResult:
        now = now if now is not None else time.time()
        qr_data = self.parse_qr_code_data(code)
        if qr_data is not None:
            if qr_data.expiration_date is not None and qr_data.expiration_date < now:
                return QRCodeResult(error="This SIF has expired")
            sif = self._fetch(qr_data.sif_id)
            if sif is None:
                return QRCodeResult(error="Failed to load SIF: SIF not found")
        elif code.startswith(f"{self.share_base_url}/"):
            remainder = code[len(self.share_base_url) + 1 :].strip("/")
            sif_id = remainder.rsplit("/", 1)[-1]
            if not sif_id:
                return QRCodeResult(error="Invalid SIF URL")
            sif = self._fetch(sif_id)
            if sif is None:
                return QRCodeResult(error="Failed to load SIF from URL")
        else:
            return QRCodeResult(error="Invalid QR code format")

        logger.info("[%s] QR code scanned by %s", sif.id, scanner_uid or "anonymous")
        if self.notifications is not None and sif.notify_on_open:
            self.notifications.schedule_sif_scanned_notification(sif, scanner_uid, now=now)
        return QRCodeResult(sif=sif)

    def handle_deep_link(self, url: str) -> DeepLinkResult:
        parsed = urlparse(url)
        if (
            parsed.scheme != constants.DEEP_LINK_SCHEME
            and parsed.hostname != constants.DEEP_LINK_HOST
        ):
            return DeepLinkResult(kind=DeepLinkKind.UNSUPPORTED)

        # For isayitforward://sif/{id} the first segment is parsed as the host.
        segments = [s for s in parsed.path.split("/") if s]
        if parsed.scheme == constants.DEEP_LINK_SCHEME and parsed.netloc:
            segments.insert(0, parsed.netloc)
        if len(segments) < 2:
            return DeepLinkResult(kind=DeepLinkKind.UNSUPPORTED)

        sif_id = segments[-1]
        if "sif" in segments[:-1]:
            kind, label = DeepLinkKind.SIF, "SIF"
        elif "share" in segments[:-1]:
            kind, label = DeepLinkKind.SHARE, "shared SIF"
        else:
            return DeepLinkResult(kind=DeepLinkKind.UNSUPPORTED)

        sif = self._fetch(sif_id)
        if sif is None:
            return DeepLinkResult(
                kind=DeepLinkKind.ERROR, error=f"Failed to load {label}: SIF not found"
            )
        return DeepLinkResult(kind=kind, sif=sif)
