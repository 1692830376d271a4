class CompileError(Exception):
    """The campaign cannot be compiled (no template, or nothing to send)."""


class CampaignStateError(Exception):
    """A lifecycle operation is not allowed from the campaign's current status."""
