# marketbot/errors.py


class StoreError(RuntimeError):
    """Document store unavailable or rejected the operation."""


class DraftNotFoundError(LookupError):
    def __init__(self, draft_id: str):
        super().__init__(f"Draft not found: {draft_id}")
        self.draft_id = draft_id


class ListingNotFoundError(LookupError):
    def __init__(self, listing_id: str):
        super().__init__(f"Listing not found: {listing_id}")
        self.listing_id = listing_id


class TranscriptionError(RuntimeError):
    pass


class LLMError(RuntimeError):
    pass


class WhatsAppAPIError(RuntimeError):
    def __init__(self, status: int, body: str):
        super().__init__(f"WhatsApp API error {status}: {body}")
        self.status = status
        self.body = body
