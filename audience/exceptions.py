class InvalidFilterDefinition(Exception):
    """A smart-list filter uses an unknown key or a malformed value."""


class ListNotFound(Exception):
    """The list does not exist for this tenant."""
