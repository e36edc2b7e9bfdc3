import os
import random
import string
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import pandas as pd

BASE_DOMAINS = [
    "example.com",
    "coffee.example",
    "bikeshare.example.org",
    "tickets.example.net",
    "shop.example.co.uk",
    "clinic.example.com",
]

# intent -> path segment vocabulary an invocation URL of that intent uses
INTENT_PATH_SEGMENTS = {
    "purchase": ["checkout", "cart", "pay", "order", "buy", "billing"],
    "browse": ["menu", "products", "catalog", "shop", "category", "collection"],
    "information": ["about", "faq", "help", "hours", "location", "contact"],
    "booking": ["book", "reserve", "appointment", "tickets", "schedule"],
    "social": ["share", "invite", "profile", "community", "follow"],
    "entertainment": ["play", "video", "music", "watch", "event"],
    "productivity": ["tasks", "notes", "calendar", "upload", "scan", "forms"],
}

FILLER_SEGMENTS = ["v1", "app", "clip", "store", "en", "us", "m"]

COMMON_PARAMS = ["id", "ref", "lang", "table", "store", "variant", "qty", "utm_source"]


def generate_random_string(length: int) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def _generate_path(intent: str, max_depth: int = 4) -> str:
    """Generates a random path anchored on one segment of the intent's vocabulary.

    Args:
        intent: Intent label whose vocabulary anchors the path
        max_depth: Maximum number of segments. Defaults to 4.

    Returns:
        A string containing the generated URL path.
    """
    depth = random.randint(1, max_depth)
    segments = random.choices(FILLER_SEGMENTS, k=depth - 1)
    segments.insert(
        random.randint(0, len(segments)),
        random.choice(INTENT_PATH_SEGMENTS[intent]),
    )
    if random.random() < 0.3:
        segments.append(str(random.randint(1, 9999)))
    return "/" + "/".join(segments)


def _generate_query_string(max_params: int = 3) -> str:
    num_params = random.randint(0, max_params)
    params = {
        random.choice(COMMON_PARAMS): generate_random_string(random.randint(2, 8))
        for _ in range(num_params)
    }
    return urlencode(params)


def generate_samples(
    num_samples: int = 100, seed: Optional[int] = None
) -> List[Tuple[str, str]]:
    """
    Generate labeled (url, intent) pairs.

    Args:
        num_samples: Number of samples to generate
        seed: Optional seed for reproducible output

    Returns:
        List of (url, intent) tuples spread evenly across intents
    """
    if seed is not None:
        random.seed(seed)

    intents = list(INTENT_PATH_SEGMENTS)
    samples = []
    for i in range(num_samples):
        intent = intents[i % len(intents)]
        url = "https://" + random.choice(BASE_DOMAINS) + _generate_path(intent)
        query = _generate_query_string()
        if query:
            url += "?" + query
        samples.append((url, intent))

    random.shuffle(samples)
    return samples


def generate_sample_data(
    output_file: str, num_samples: int = 100, seed: Optional[int] = None
) -> str:
    """
    Generate sample training data with intent-labeled invocation URLs.

    Args:
        output_file: Path where the sample data will be saved
        num_samples: Number of sample URLs to generate
        seed: Optional seed for reproducible output

    Returns:
        Path to the generated sample file
    """
    output_dir = os.path.dirname(output_file)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    df = pd.DataFrame(generate_samples(num_samples, seed), columns=["url", "intent"])
    df.to_csv(output_file, index=False)

    return output_file
