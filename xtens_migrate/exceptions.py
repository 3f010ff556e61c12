"""
Error taxonomy for the migration scripts.
"""


class MigrationError(RuntimeError):
    """A migration step failed and the current run (or file) cannot go on."""


class FatalParseError(MigrationError):
    """A mandatory processed-metadata field could not be parsed.

    Aborts the extraction of the whole workbook.
    """


class SkippedRecord(MigrationError):
    """A single CNV row is malformed and is left out of the batch."""
