# services/google_images.py
"""
Google Images scraping, used as a late fallback for gift photos
"""

import re
import time
import logging
from typing import List, Optional
from urllib.parse import unquote

import requests

logger = logging.getLogger(__name__)

SEARCH_URL = 'https://www.google.com/search'
USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
SEARCH_HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Cache-Control': 'no-cache',
}

IMAGE_PATTERNS = [
    re.compile(r'"(https://[^"]*\.(?:jpg|jpeg|png|webp|gif))[^"]*"', re.IGNORECASE),
    re.compile(r'\["(https://[^"]*\.(?:jpg|jpeg|png|webp|gif)[^"]*)",\d+,\d+\]', re.IGNORECASE),
    re.compile(r'data-src="([^"]*\.(?:jpg|jpeg|png|webp|gif)[^"]*)"', re.IGNORECASE),
]
BLOCKED_FRAGMENTS = ('data:', 'base64', 'google.com', 'gstatic.com', 'googleusercontent.com')
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')
MAX_CANDIDATES = 10
MAX_VALIDATED = 5

KEY_PRODUCT_WORDS = re.compile(
    r'\b(?:pro|max|ultra|premium|elite|standard|classic|edition|series|model|'
    r'men|women|kids|adult|large|medium|small|xl|xxl)\b'
)


def extract_image_candidates(html: str) -> List[str]:
    """Candidate image URLs from a results page, Google-hosted and inline images removed"""
    found = []
    for pattern in IMAGE_PATTERNS:
        for match in pattern.finditer(html):
            if len(found) >= MAX_CANDIDATES:
                break
            image_url = unquote(match.group(1))
            lowered = image_url.lower()
            if (len(image_url) > 20
                    and not any(fragment in lowered for fragment in BLOCKED_FRAGMENTS)
                    and any(ext in lowered for ext in IMAGE_EXTENSIONS)
                    and image_url not in found):
                found.append(image_url)
    return found


def is_image_url(url: str, session: Optional[requests.Session] = None) -> bool:
    """HEAD the URL and check that it serves an image"""
    http = session or requests
    try:
        response = http.head(url, headers={'User-Agent': USER_AGENT}, timeout=5, allow_redirects=True)
    except requests.RequestException:
        return False
    return response.ok and response.headers.get('content-type', '').startswith('image/')


def get_google_image_result(search_term: str) -> Optional[str]:
    """
    First reachable image for a Google Images query

    Args:
        search_term: Free-text query

    Returns:
        Image URL or None
    """
    clean_term = re.sub(r'[^\w\s-]', '', search_term or '').strip()
    if not clean_term:
        return None

    try:
        response = requests.get(
            SEARCH_URL,
            params={'q': clean_term, 'tbm': 'isch', 'tbs': 'isz:m'},
            headers=SEARCH_HEADERS,
            timeout=10,
        )
    except requests.RequestException as e:
        logger.warning(f"Google Images search failed for '{search_term}': {str(e)}")
        return None

    if not response.ok:
        logger.debug(f"Google Images returned HTTP {response.status_code} for '{search_term}'")
        return None

    candidates = extract_image_candidates(response.text)
    logger.debug(f"Google Images found {len(candidates)} candidates for '{search_term}'")
    for image_url in candidates[:MAX_VALIDATED]:
        if is_image_url(image_url):
            return image_url
    return None


def extract_key_terms(name: str, description: Optional[str] = None) -> str:
    """Brand-like capitalised words from the name plus product qualifiers"""
    text = f"{name} {description or ''}".lower()
    brands = re.findall(r'\b[A-Z][a-z]+\b', name)[:2]
    qualifiers = KEY_PRODUCT_WORDS.findall(text)[:3]
    return ' '.join(brands + qualifiers) or name


def get_product_image_from_google(product_name: str, product_description: Optional[str] = None,
                                  delay: float = 1.0) -> Optional[str]:
    strategies = [f"{product_name} product", f"{product_name} buy", product_name]
    if product_description:
        strategies.append(extract_key_terms(product_name, product_description))

    for index, search_term in enumerate(strategies):
        if index and delay:
            time.sleep(delay)
        result = get_google_image_result(search_term)
        if result:
            return result
    return None
