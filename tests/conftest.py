import pytest

from collapse_jfr.recording import Recording

# fixtures defined in this file will be available to all tests.


@pytest.fixture
def recordings():
    """Map of path -> document, with an opener reading from it.

    Paths mapped to an exception instance raise it when opened.
    """

    class InMemoryRecordings(dict):
        def open(self, path):
            value = self[str(path)]
            if isinstance(value, Exception):
                raise value
            return Recording.from_document(value)

    return InMemoryRecordings()
