"""
Content scanners used by the upload pipeline.

A scanner inspects raw bytes and returns a rejection reason, or None when
nothing suspicious was found. Patterns are kept deliberately short so
ordinary compressed image data does not trigger false positives.
"""

import re
from typing import Iterable, List, Optional, Protocol

# Script open tags and dangerous calls
CODE_INJECTION_PATTERNS = (
    rb"<\?php",
    rb"<\?=",
    rb"<script[\s>]",
    rb"eval\s*\(",
    rb"system\s*\(",
    rb"exec\s*\(",
    rb"shell_exec\s*\(",
    rb"passthru\s*\(",
)

# Well-known web shell names
WEB_SHELL_PATTERNS = (
    rb"c99shell",
    rb"r57shell",
    rb"webshell",
    rb"phpspy",
)

# Checked against serialized image metadata
METADATA_PATTERNS = (
    rb"<\?php",
    rb"eval\(",
    rb"base64_decode",
    rb"system\(",
)


class ContentScanner(Protocol):
    def scan(self, data: bytes) -> Optional[str]:
        ...


class PatternScanner:
    """
    Rejects data matching any of a set of case-insensitive byte patterns.

    Example:
        >>> scanner = PatternScanner([rb"<\\?php"], "Malicious code detected in file")
        >>> scanner.scan(b"GIF89a<?php echo 1; ?>")
        'Malicious code detected in file'
    """

    def __init__(self, patterns: Iterable[bytes], reason: str):
        self.patterns = [re.compile(pattern, re.I) for pattern in patterns]
        self.reason = reason

    def scan(self, data: bytes) -> Optional[str]:
        for pattern in self.patterns:
            if pattern.search(data):
                return self.reason
        return None


class SignatureScanner(PatternScanner):
    def __init__(self):
        super().__init__(CODE_INJECTION_PATTERNS, "Malicious code detected in file")


class WebShellScanner(PatternScanner):
    def __init__(self):
        super().__init__(WEB_SHELL_PATTERNS, "Known web shell signature detected")


class MetadataScanner(PatternScanner):
    def __init__(self):
        super().__init__(METADATA_PATTERNS, "Malicious EXIF data detected")


def default_scanners() -> List[ContentScanner]:
    return [SignatureScanner(), WebShellScanner()]
