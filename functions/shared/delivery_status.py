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

"""
Delivery state machine for SIFs.

Every status change made by the delivery pipeline goes through
`next_status`, so a SIF can never jump e.g. from cancelled back to
processing.
"""

from enum import StrEnum

from shared.types import SIFDeliveryStatus


class DeliveryTrigger(StrEnum):
    SCHEDULE = "schedule"
    DELIVER = "deliver"
    UPLOAD = "upload"
    COMPLETE = "complete"
    CANCEL = "cancel"
    EXPIRE = "expire"
    FAIL = "fail"
    RETRY = "retry"


class InvalidTransitionError(ValueError):
    def __init__(self, current: SIFDeliveryStatus, trigger: DeliveryTrigger):
        super().__init__(f"Cannot {trigger.value} a SIF that is {current.value}")
        self.current = current
        self.trigger = trigger


_S = SIFDeliveryStatus
_T = DeliveryTrigger

TRANSITIONS: dict[tuple[SIFDeliveryStatus, DeliveryTrigger], SIFDeliveryStatus] = {
    (_S.PENDING, _T.SCHEDULE): _S.SCHEDULED,
    (_S.PENDING, _T.DELIVER): _S.PROCESSING,
    (_S.PENDING, _T.CANCEL): _S.CANCELLED,
    (_S.PENDING, _T.EXPIRE): _S.EXPIRED,
    (_S.SCHEDULED, _T.SCHEDULE): _S.SCHEDULED,
    (_S.SCHEDULED, _T.DELIVER): _S.PROCESSING,
    (_S.SCHEDULED, _T.CANCEL): _S.CANCELLED,
    (_S.SCHEDULED, _T.EXPIRE): _S.EXPIRED,
    (_S.PROCESSING, _T.UPLOAD): _S.UPLOADING,
    (_S.PROCESSING, _T.COMPLETE): _S.DELIVERED,
    (_S.PROCESSING, _T.FAIL): _S.FAILED,
    (_S.PROCESSING, _T.RETRY): _S.SCHEDULED,
    (_S.UPLOADING, _T.COMPLETE): _S.DELIVERED,
    (_S.UPLOADING, _T.FAIL): _S.FAILED,
    (_S.UPLOADING, _T.RETRY): _S.SCHEDULED,
    (_S.FAILED, _T.RETRY): _S.SCHEDULED,
    (_S.FAILED, _T.CANCEL): _S.CANCELLED,
    (_S.FAILED, _T.EXPIRE): _S.EXPIRED,
    (_S.DELIVERED, _T.EXPIRE): _S.EXPIRED,
}

TERMINAL_STATUSES = frozenset({_S.DELIVERED, _S.CANCELLED, _S.EXPIRED})

# Statuses a worker may pick up for delivery.
DELIVERABLE_STATUSES = frozenset({_S.PENDING, _S.SCHEDULED})


def can_transition(current: SIFDeliveryStatus, trigger: DeliveryTrigger) -> bool:
    return (SIFDeliveryStatus(current), trigger) in TRANSITIONS


def next_status(
    current: SIFDeliveryStatus, trigger: DeliveryTrigger
) -> SIFDeliveryStatus:
    """Returns the status reached by applying `trigger` to `current`."""
    current = SIFDeliveryStatus(current)
    try:
        return TRANSITIONS[(current, trigger)]
    except KeyError:
        raise InvalidTransitionError(current, trigger) from None


def is_terminal(status: SIFDeliveryStatus) -> bool:
    return SIFDeliveryStatus(status) in TERMINAL_STATUSES
