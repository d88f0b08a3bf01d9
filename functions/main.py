# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the iSIF backend - SIF delivery triggers and schedules.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import os
from typing import Optional

# Third-party library imports
from firebase_functions import https_fn, logger, options, scheduler_fn
from firebase_functions.firestore_fn import (
    on_document_written,
    Event,
    Change,
    DocumentSnapshot,
)

# Cloud Functions keep SIF state in Firestore unless told otherwise.
os.environ.setdefault("ISIF_USE_FIRESTORE", "true")

# Local application imports
from backend.delivery import DeliveryError, DeliveryErrorKind
from backend.dependencies import (
    ensure_firebase_app,
    get_delivery_service,
    get_notification_service,
)
from backend.worker import run_housekeeping
from shared.constants import SIF_ID_MAX_LENGTH
from shared.firebase_constants import SIFS_COLLECTION
from shared.json_utils import convert_keys
from shared.types import SIFDeliveryStatus

ensure_firebase_app()

DELIVERY_ERROR_CODES = {
    DeliveryErrorKind.SIF_NOT_FOUND: https_fn.FunctionsErrorCode.NOT_FOUND,
    DeliveryErrorKind.PERMISSION_DENIED: https_fn.FunctionsErrorCode.PERMISSION_DENIED,
    DeliveryErrorKind.INVALID_STATE: https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
    DeliveryErrorKind.INVALID_ARGUMENT: https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
}


def _to_https_error(e: DeliveryError) -> https_fn.HttpsError:
    code = DELIVERY_ERROR_CODES.get(e.kind, https_fn.FunctionsErrorCode.INTERNAL)
    return https_fn.HttpsError(code, str(e))


def _require_sif_id(req: https_fn.CallableRequest) -> str:
    sif_id = req.data.get("sif_id")
    if not sif_id:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify sif_id parameter.",
        )
    if len(sif_id) > SIF_ID_MAX_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Incorrect sif_id length.",
        )
    return sif_id


def _require_uid(req: https_fn.CallableRequest) -> str:
    if req.auth is None or not req.auth.uid:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "User authentication required.",
        )
    return req.auth.uid


def start_sif_delivery(user_uid: str, sif_id: str) -> dict:
    """
    Schedules the SIF, or delivers it within this invocation when it is due.
    Returns the delivery progress in camelCase form.
    """
    delivery = get_delivery_service()
    sif = delivery.request_delivery(user_uid, sif_id, enqueue=False)
    if sif.delivery_status != SIFDeliveryStatus.SCHEDULED:
        delivery.deliver_sif(sif_id)
    return convert_keys(delivery.get_progress(sif_id), "snake_to_camel")


@https_fn.on_call(timeout_sec=120, memory=options.MemoryOption.MB_512)
def request_sif_delivery(req: https_fn.CallableRequest) -> dict:
    """
    Requests delivery of one of the caller's SIFs.

    Args:
        req (https_fn.CallableRequest): The request, containing the sif_id.

    Returns:
        The SIF's delivery progress.
    """
    sif_id = _require_sif_id(req)
    user_uid = _require_uid(req)
    try:
        return start_sif_delivery(user_uid, sif_id)
    except DeliveryError as e:
        logger.warn(f"Delivery request for {sif_id} rejected: {e}")
        raise _to_https_error(e)


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def cancel_sif(req: https_fn.CallableRequest) -> dict:
    sif_id = _require_sif_id(req)
    user_uid = _require_uid(req)
    delivery = get_delivery_service()
    try:
        delivery.cancel_sif(user_uid, sif_id)
    except DeliveryError as e:
        raise _to_https_error(e)
    return convert_keys(delivery.get_progress(sif_id), "snake_to_camel")


def handle_sif_written(
    sif_id: str, before: Optional[dict], after: Optional[dict]
) -> None:
    """
    Reacts to a SIF document change.

    - Deleted SIFs have their pending notifications cancelled.
    - Newly created pending SIFs are scheduled or delivered. SIFs created
      through the API have usually been claimed already; losing the claim is
      not an error.
    """
    if after is None:
        if before and before.get("authorUid"):
            cancelled = get_notification_service().cancel_notifications_for_sif(
                before["authorUid"], sif_id
            )
            logger.info(f"[{sif_id}] Deleted, cancelled {cancelled} notifications")
        return

    if before is not None:
        return
    if after.get("deliveryStatus", SIFDeliveryStatus.PENDING) != SIFDeliveryStatus.PENDING:
        return

    author_uid = after.get("authorUid")
    if not author_uid:
        logger.warn(f"[{sif_id}] Created without an author, ignoring")
        return
    try:
        start_sif_delivery(author_uid, sif_id)
    except DeliveryError as e:
        if e.kind != DeliveryErrorKind.INVALID_STATE:
            logger.error(f"[{sif_id}] Could not start delivery: {e}")
            return
        logger.info(f"[{sif_id}] Already handled: {e}")


@on_document_written(
    timeout_sec=300,
    memory=options.MemoryOption.MB_512,
    document=SIFS_COLLECTION + "/{sifId}",
)
def on_sif_document_written(event: Event[Change[DocumentSnapshot]]) -> None:
    """Triggered by any write to a SIF document."""
    sif_id = event.params["sifId"]
    before = event.data.before.to_dict() if event.data.before else None
    after = event.data.after.to_dict() if event.data.after else None
    handle_sif_written(sif_id, before, after)


def run_scheduled_processing(now: Optional[float] = None) -> int:
    """Delivers due SIFs, expires overdue ones and sends due notifications."""
    delivery = get_delivery_service()
    delivered = delivery.process_scheduled_sifs(now=now)
    run_housekeeping(
        delivery=delivery, notifications=get_notification_service(), now=now
    )
    if delivered:
        logger.info(f"Delivered {delivered} scheduled SIFs")
    return delivered


@scheduler_fn.on_schedule(schedule="every 5 minutes", timeout_sec=300)
def process_scheduled_sifs(event: scheduler_fn.ScheduledEvent) -> None:
    run_scheduled_processing()
