import functools
from typing import Iterable, Optional
from urllib.parse import SplitResult, parse_qsl, urlsplit

from clipintel import constants
from clipintel.errors import InvalidURL
from clipintel.models import URLFeatures


@functools.lru_cache(maxsize=10000)
def _parse_url(url: str) -> SplitResult:
    """
    Parse URL with caching for repeated invocations.

    Args:
        url: URL to parse

    Returns:
        Split URL components
    """
    return urlsplit(url)


def domain_complexity(host: str) -> float:
    if not host:
        return 0.0
    return (
        len(host.split(".")) * constants.DOMAIN_SEGMENT_WEIGHT
        + len(host) * constants.DOMAIN_LENGTH_WEIGHT
    )


def semantic_score(path: str, keywords: Optional[Iterable[str]] = None) -> float:
    """Fraction of the semantic keyword set found anywhere in the path."""
    keywords = list(keywords or constants.SEMANTIC_KEYWORDS)
    path_lower = path.lower()
    matched = sum(1 for keyword in keywords if keyword in path_lower)
    return matched / len(keywords)


def extract_features(
    url: str,
    secure_schemes: Iterable[str] = constants.SECURE_SCHEMES,
    max_url_length: int = constants.MAX_URL_LENGTH,
) -> URLFeatures:
    """
    Extract the structural feature record of a URL.

    Args:
        url: Invocation URL to analyze
        secure_schemes: Schemes treated as the secure variant
        max_url_length: Longest URL accepted

    Returns:
        URLFeatures for the URL

    Raises:
        InvalidURL: if the URL has no scheme or host, is too long, or
            cannot be split into components
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidURL(str(url), "empty URL")

    url = url.strip()
    if len(url) > max_url_length:
        raise InvalidURL(url, f"longer than {max_url_length} characters")

    try:
        parsed = _parse_url(url)
        host = parsed.hostname or ""
        # Accessing the port validates it
        parsed.port
    except ValueError as e:
        raise InvalidURL(url, str(e)) from e

    scheme = parsed.scheme.lower()
    if not scheme:
        raise InvalidURL(url, "missing scheme")
    if not host:
        raise InvalidURL(url, "missing host")

    path = parsed.path or "/"
    segments = tuple(segment for segment in path.split("/") if segment)

    # dict() keeps the last occurrence of a repeated key
    params = dict(parse_qsl(parsed.query, keep_blank_values=True))

    return URLFeatures(
        url=url,
        scheme=scheme,
        host=host,
        path=path,
        path_segments=segments,
        query_params=params,
        fragment=parsed.fragment or None,
        path_length=len(path),
        parameter_count=len(params),
        url_length=len(url),
        is_secure=scheme in {s.lower() for s in secure_schemes},
        domain_complexity=domain_complexity(host),
        semantic_score=semantic_score(path),
    )


def structural_vector(features: URLFeatures) -> list:
    """Numeric vector used for structural similarity between URLs."""
    return [
        float(len(features.path_segments)),
        float(features.parameter_count),
        features.url_length / 100.0,
        features.domain_complexity,
        features.semantic_score,
        1.0 if features.is_secure else 0.0,
    ]
