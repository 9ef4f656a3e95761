"""Request dispatching: menus, callback payloads and processing jobs."""

from visionbot.dispatch.callback_data import (
    CallbackDataError,
    CancelSelection,
    CommandSelection,
    build_menu,
    decode,
    encode_selection,
)
from visionbot.dispatch.dispatcher import RequestDispatcher, RequestState, VisionRequest
from visionbot.dispatch.file_refs import FileReferenceStore

__all__ = [
    "CallbackDataError",
    "CancelSelection",
    "CommandSelection",
    "FileReferenceStore",
    "RequestDispatcher",
    "RequestState",
    "VisionRequest",
    "build_menu",
    "decode",
    "encode_selection",
]
