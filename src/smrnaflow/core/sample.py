"""Sample identity resolution.

Every tool in the pipeline renames its output (``_trimmed``, ``.mature``,
``.mature_unmapped``, ``.sorted`` ...). The resolver strips those suffixes so
that files produced at different stages for the same biological sample
correlate on one key.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Union

from smrnaflow.constants import FALLBACK_EXTENSIONS, SAMPLE_SUFFIXES
from smrnaflow.exceptions import InvalidSampleKey


class SampleIdentityResolver:
    """Derive stable sample keys from filenames."""

    def __init__(
        self,
        suffixes: Iterable[str] = SAMPLE_SUFFIXES,
        fallback_extensions: Iterable[str] = FALLBACK_EXTENSIONS,
    ):
        self.suffixes = tuple(suffixes)
        self.fallback_extensions = frozenset(ext.lower() for ext in fallback_extensions)
        if not self.suffixes:
            raise ValueError("At least one suffix pattern is required")
        optional_groups = "".join(f"(?:{suffix})?" for suffix in self.suffixes)
        self._pattern = re.compile(f"{optional_groups}$")

    def _strip_known(self, name: str) -> str:
        match = self._pattern.search(name)
        if match is None or match.start() == len(name):
            return name
        return name[: match.start()]

    def resolve(self, filename: Union[str, Path]) -> str:
        """Return the sample key for ``filename``.

        Known suffixes are stripped repeatedly until the name is stable. When
        none match, a known file extension (``.txt``, ``.csv`` ...) is dropped
        instead; any other dotted part stays in the key.

        Raises:
            InvalidSampleKey: if nothing is left after stripping.
        """
        name = Path(filename).name
        key = name
        while True:
            stripped = self._strip_known(key)
            if stripped == key:
                break
            key = stripped

        if key == name:
            root, ext = os.path.splitext(name)
            if ext[1:].lower() in self.fallback_extensions:
                key = root

        if not key:
            raise InvalidSampleKey(
                f"Filename '{filename}' resolves to an empty sample key", filename=str(filename)
            )
        return key


_DEFAULT_RESOLVER = SampleIdentityResolver()


def resolve_sample_key(filename: Union[str, Path]) -> str:
    """Resolve ``filename`` with the default suffix list."""
    return _DEFAULT_RESOLVER.resolve(filename)
