"""Cache-Control policy resolution for uploaded objects."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

ShouldBeCached = Callable[[str], bool]

REQUIRE_REVALIDATION = "no-cache"
"""Browsers must revalidate on every request. Used for HTML."""

LONG_LIVED_CACHE = "public, max-age=31536000, immutable"
"""Cache for one year. Only safe for content-hashed (versioned) files."""

# An 8-character lowercase hex token between separators, the usual shape of
# a bundler's content hash ("app.1a2b3c4d.js", "assets/deadbeef/logo.png").
_HASH_TOKEN = re.compile(r"(?:^|[./_-])[0-9a-f]{8}(?=[./_-])")


class CachePolicyKind(str, Enum):
    """The kinds of caching directive an object can receive."""

    NO_DIRECTIVE = "no-directive"
    REVALIDATE = "revalidate"
    LONG_LIVED = "long-lived"
    EXPLICIT_OVERRIDE = "explicit-override"


@dataclass(frozen=True)
class CachePolicy:
    """A resolved caching decision."""

    kind: CachePolicyKind
    """Which rule produced this policy"""

    directive: Optional[str] = None
    """Cache-Control header value, or None when no header should be sent"""

    @classmethod
    def no_directive(cls) -> "CachePolicy":
        return cls(CachePolicyKind.NO_DIRECTIVE)

    @classmethod
    def revalidate(cls) -> "CachePolicy":
        return cls(CachePolicyKind.REVALIDATE, REQUIRE_REVALIDATION)

    @classmethod
    def long_lived(cls) -> "CachePolicy":
        return cls(CachePolicyKind.LONG_LIVED, LONG_LIVED_CACHE)

    @classmethod
    def explicit(cls, directive: str) -> "CachePolicy":
        return cls(CachePolicyKind.EXPLICIT_OVERRIDE, directive)


def default_should_be_cached(path: str) -> bool:
    """Return True if ``path`` looks like a content-hashed file name.

    Examples:
        >>> default_should_be_cached("js/app.deadbeef.js")
        True
        >>> default_should_be_cached("/x/deadbeef/file.js")
        True
        >>> default_should_be_cached("index.html")
        False
        >>> default_should_be_cached("app.DEADBEEF.js")
        False
    """
    return _HASH_TOKEN.search(path) is not None


def resolve(
    content_type: str,
    candidate_path: str,
    should_cache: bool,
    explicit_override: Optional[str] = None,
    classify: Optional[ShouldBeCached] = None,
) -> CachePolicy:
    """Decide the caching directive for an object.

    The first matching rule wins:

    1. ``should_cache`` is false: no directive
    2. an explicit override was given: use it verbatim
    3. HTML: require revalidation
    4. ``classify(candidate_path)`` is true: cache long-lived
    5. otherwise: no directive

    Args:
        content_type: MIME type of the object
        candidate_path: Path used for classification (relative upload path)
        should_cache: Whether the caller asked for cache headers at all
        explicit_override: Literal Cache-Control value that bypasses the rules
        classify: Predicate marking paths as immutable; defaults to
            :func:`default_should_be_cached`

    Returns:
        The resolved CachePolicy
    """
    if not should_cache:
        return CachePolicy.no_directive()

    if explicit_override:
        return CachePolicy.explicit(explicit_override)

    if content_type == "text/html":
        return CachePolicy.revalidate()

    classify = classify or default_should_be_cached
    if classify(candidate_path):
        return CachePolicy.long_lived()

    return CachePolicy.no_directive()


class CachePolicyResolver:
    """Resolves cache policies with a fixed classification predicate."""

    def __init__(self, should_be_cached: Optional[ShouldBeCached] = None):
        """Initialize the resolver.

        Args:
            should_be_cached: Predicate deciding whether a path is safe to
                cache long-lived. Defaults to the hash-token detector.
        """
        self.should_be_cached = should_be_cached or default_should_be_cached

    def resolve(
        self,
        content_type: str,
        candidate_path: str,
        should_cache: bool,
        explicit_override: Optional[str] = None,
    ) -> CachePolicy:
        """Resolve a policy using this resolver's predicate."""
        return resolve(
            content_type,
            candidate_path,
            should_cache,
            explicit_override=explicit_override,
            classify=self.should_be_cached,
        )
