from .broadcaster import BroadcastDispatcher, BroadcastResult, RecipientOutcome, SendAck

__all__ = ["BroadcastDispatcher", "BroadcastResult", "RecipientOutcome", "SendAck"]
