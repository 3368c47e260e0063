# services/image_extractor.py
"""
Product image extraction from store pages (Open Graph, Twitter cards, JSON-LD)
"""

import json
import logging
from typing import Any, Optional

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml',
    'Accept-Language': 'en-US,en;q=0.9',
}


def _image_value(image: Any) -> Optional[str]:
    if isinstance(image, str):
        return image
    if isinstance(image, list) and image:
        return _image_value(image[0])
    if isinstance(image, dict):
        return image.get('url')
    return None


def extract_image_from_json_ld(data: Any) -> Optional[str]:
    """
    Find an image in JSON-LD structured data

    Arrays are searched in order; objects are checked for `image` (string,
    list or ImageObject) and then for images on their `offers`.
    """
    if isinstance(data, list):
        for item in data:
            image = extract_image_from_json_ld(item)
            if image:
                return image
        return None

    if not isinstance(data, dict):
        return None

    image = _image_value(data.get('image'))
    if image:
        return image

    offers = data.get('offers')
    if isinstance(offers, dict):
        offers = [offers]
    for offer in offers or []:
        if isinstance(offer, dict) and offer.get('image'):
            return _image_value(offer['image'])
    return None


def extract_image_from_html(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, 'html.parser')

    og_image = soup.find('meta', attrs={'property': 'og:image'})
    if og_image and og_image.get('content'):
        return og_image['content']

    twitter_image = soup.find('meta', attrs={'name': 'twitter:image'})
    if twitter_image and twitter_image.get('content'):
        return twitter_image['content']

    for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
        try:
            data = json.loads(script.string or '')
        except ValueError:
            continue
        image = extract_image_from_json_ld(data)
        if image:
            return image
    return None


def extract_best_product_image(url: str) -> Optional[str]:
    """
    Fetch a product page and return its best product image

    Args:
        url: Product page URL; search result pages are skipped

    Returns:
        Image URL or None when nothing usable is found
    """
    if not url or '/s?k=' in url or '/search' in url:
        return None

    try:
        response = requests.get(url, headers=BROWSER_HEADERS, timeout=10)
        if not response.ok:
            logger.debug(f"Image extraction got HTTP {response.status_code} for {url}")
            return None
        image = extract_image_from_html(response.text)
    except requests.RequestException as e:
        logger.warning(f"Image extraction failed for {url}: {str(e)}")
        return None

    if image:
        logger.debug(f"Extracted product image {image} from {url}")
    return image
