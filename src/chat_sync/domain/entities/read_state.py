from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.ids import ConfirmedId


@dataclass(frozen=True, slots=True)
class ReadState:
    message_id: ConfirmedId
    read: bool = False
    in_flight: bool = False
