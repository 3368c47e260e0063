# services/image_service.py
"""
Gift image lookup

Curated keyword images are always available. Unsplash and Pexels searches
are used when API keys are configured, and `resolve_gift_image` chains the
richer lookups (catalog, Amazon, product page, Google Images) when image
lookup is enabled.
"""

import os
import re
import logging
from typing import Optional

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10

_CARD = 'https://images.unsplash.com/{}?ixlib=rb-4.0.3&auto=format&fit=crop&w=400&h=250'

# Keyword -> card image, first substring match wins
RELIABLE_IMAGES = [
    ('art', _CARD.format('photo-1513475382585-d06e58bcb0e0')),
    ('paint', _CARD.format('photo-1513475382585-d06e58bcb0e0')),
    ('creative', _CARD.format('photo-1460661419201-fd4cecdf8a8b')),
    ('drawing', _CARD.format('photo-1558618666-fcd25c85cd64')),
    ('tablet', _CARD.format('photo-1558618666-fcd25c85cd64')),
    ('tech', _CARD.format('photo-1507003211169-0a1dd7228f2d')),
    ('keyboard', _CARD.format('photo-1541140532154-b024d705b90a')),
    ('gaming', _CARD.format('photo-1541140532154-b024d705b90a')),
    ('smart', _CARD.format('photo-1507003211169-0a1dd7228f2d')),
    ('fitness', _CARD.format('photo-1544117519-31a4b719223d')),
    ('yoga', _CARD.format('photo-1506905925346-21bda4d32df4')),
    ('outdoors', _CARD.format('photo-1487730116645-74489c95b41b')),
    ('camping', _CARD.format('photo-1487730116645-74489c95b41b')),
    ('hiking', _CARD.format('photo-1516892366775-8d24e1b9d8b9')),
    ('backpack', _CARD.format('photo-1516892366775-8d24e1b9d8b9')),
    ('coffee', _CARD.format('photo-1447933601403-0c6688de566e')),
    ('tea', _CARD.format('photo-1447933601403-0c6688de566e')),
    ('cooking', _CARD.format('photo-1556909114-f6e7ad7d3136')),
    ('kitchen', _CARD.format('photo-1556909114-f6e7ad7d3136')),
    ('book', _CARD.format('photo-1481627834876-b7833e8f5570')),
    ('reading', _CARD.format('photo-1481627834876-b7833e8f5570')),
    ('watch', _CARD.format('photo-1523275335684-37898b6baf30')),
    ('jewelry', _CARD.format('photo-1515562141207-7a88fb7ce338')),
    ('bag', _CARD.format('photo-1553062407-98eeb64c6a62')),
    ('music', _CARD.format('photo-1493225457124-a3eb161ffa5f')),
    ('headphones', _CARD.format('photo-1505740420928-5e560c06d30e')),
    ('speaker', _CARD.format('photo-1608043152269-423dbba4e7e1')),
]
DEFAULT_GIFT_IMAGE = _CARD.format('photo-1549465220-1a8b9238cd48')

_THUMB = 'https://images.unsplash.com/{}?w=400'

FALLBACK_IMAGES = {
    'headphones': _THUMB.format('photo-1505740420928-5e560c06d30e'),
    'laptop': _THUMB.format('photo-1496181133206-80ce9b88a853'),
    'phone': _THUMB.format('photo-1511707171634-5f897ff02aa9'),
    'tablet': _THUMB.format('photo-1544244015-0df4b3ffc6b0'),
    'camera': _THUMB.format('photo-1606983340126-99ab4feaa64a'),
    'smartwatch': _THUMB.format('photo-1434494878577-86c23bcb06b9'),
    'bluetooth speaker': _THUMB.format('photo-1608043152269-423dbba4e7e1'),
    'gaming mouse': _THUMB.format('photo-1527814050087-3793815479db'),
    'keyboard': _THUMB.format('photo-1587829741301-dc798b83add3'),
    'watch': _THUMB.format('photo-1522312346375-d1a52e2b99b3'),
    'sunglasses': _THUMB.format('photo-1572635196237-14b3f281503f'),
    'bag': _THUMB.format('photo-1553062407-98eeb64c6a62'),
    'wallet': _THUMB.format('photo-1627123424574-724758594e93'),
    'jewelry': _THUMB.format('photo-1515562141207-7a88fb7ce338'),
    'necklace': _THUMB.format('photo-1599643478518-a784e5dc4c8f'),
    'bracelet': _THUMB.format('photo-1611591437281-460bfbe1220a'),
    'earrings': _THUMB.format('photo-1535632066927-ab7c9ab60908'),
    'candle': _THUMB.format('photo-1602974508525-dd80dc41b4be'),
    'plant': _THUMB.format('photo-1416879595882-3373a0480b5b'),
    'mug': _THUMB.format('photo-1514228742587-6b1558fcf93a'),
    'pillow': _THUMB.format('photo-1586023492125-27b2c045efd7'),
    'blanket': _THUMB.format('photo-1584100936595-c0654b55a2e2'),
    'lamp': _THUMB.format('photo-1507003211169-0a1dd7228f2d'),
    'vase': _THUMB.format('photo-1578662996442-48f60103fc96'),
    'book': _THUMB.format('photo-1507003211169-0a1dd7228f2d'),
    'notebook': _THUMB.format('photo-1517971129774-3b2e64e60a8e'),
    'pen': _THUMB.format('photo-1583485088034-697b5bc54ccd'),
    'yoga mat': _THUMB.format('photo-1544367567-0f2fcb009e0b'),
    'water bottle': _THUMB.format('photo-1602143407151-7111542de6e8'),
    'dumbbells': _THUMB.format('photo-1517836357463-d25dfeac3438'),
    'running shoes': _THUMB.format('photo-1542291026-7eec264c27ff'),
    'perfume': _THUMB.format('photo-1541643600914-78b084683601'),
    'skincare': _THUMB.format('photo-1570194065650-d99fb4bedf0a'),
    'makeup': _THUMB.format('photo-1522335789203-aabd1fc54bc9'),
    'coffee': _THUMB.format('photo-1495474472287-4d71bcdd2085'),
    'tea': _THUMB.format('photo-1544787219-7f47ccb76574'),
    'wine': _THUMB.format('photo-1506377247377-2a5b3b417ebb'),
    'chocolate': _THUMB.format('photo-1549007908-b80825ae1bab'),
    'gift': _THUMB.format('photo-1513475382585-d06e58bcb0e0'),
    'present': _THUMB.format('photo-1607884863050-f6b8c02b3342'),
}

# Word families -> fallback key, checked after plain substring matches
FALLBACK_PATTERNS = [
    (re.compile(r'\b(phone|mobile|smartphone|iphone|android)\b'), 'phone'),
    (re.compile(r'\b(laptop|computer|macbook|pc)\b'), 'laptop'),
    (re.compile(r'\b(headphone|earphone|airpods|earbud)\b'), 'headphones'),
    (re.compile(r'\b(watch|timepiece)\b'), 'watch'),
    (re.compile(r'\b(bag|purse|backpack|handbag)\b'), 'bag'),
    (re.compile(r'\b(book|novel|journal|diary)\b'), 'book'),
    (re.compile(r'\b(plant|flower|succulent|garden)\b'), 'plant'),
    (re.compile(r'\b(candle|scented|aromatherapy)\b'), 'candle'),
    (re.compile(r'\b(perfume|fragrance|cologne)\b'), 'perfume'),
    (re.compile(r'\b(coffee|espresso|latte|brew)\b'), 'coffee'),
    (re.compile(r'\b(wine|alcohol|bottle|drink)\b'), 'wine'),
    (re.compile(r'\b(chocolate|candy|sweet|dessert)\b'), 'chocolate'),
    (re.compile(r'\b(jewelry|ring|pendant|charm)\b'), 'jewelry'),
    (re.compile(r'\b(shoe|sneaker|boot|footwear)\b'), 'running shoes'),
    (re.compile(r'\b(camera|photo|photography)\b'), 'camera'),
    (re.compile(r'\b(speaker|audio|music|sound)\b'), 'bluetooth speaker'),
]


def setting(name: str, default=None):
    """Read a setting from the Flask config, or the environment outside an app"""
    if has_app_context():
        return current_app.config.get(name, default)
    return os.environ.get(name, default)


def get_reliable_image(keywords: str) -> str:
    """Curated card image for a keyword string, default gift image otherwise"""
    keywords = (keywords or '').lower()
    for keyword, image_url in RELIABLE_IMAGES:
        if keyword in keywords:
            return image_url
    return DEFAULT_GIFT_IMAGE


def clean_product_name(product_name: str) -> str:
    """
    Reduce a product name to a short search query

    Drops a leading article and a trailing "for/with/in ..." clause,
    strips punctuation and keeps at most three words.
    """
    cleaned = (product_name or '').lower()
    cleaned = re.sub(r'^(a |an |the )', '', cleaned)
    cleaned = re.sub(r' (for .+|with .+|in .+)$', '', cleaned)
    cleaned = re.sub(r'[^\w\s]', ' ', cleaned)
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    return ' '.join(cleaned.split(' ')[:3])


def get_fallback_image(product_name: str, product_description: Optional[str] = None) -> str:
    search_text = f"{product_name or ''} {product_description or ''}".lower()

    for category, image_url in FALLBACK_IMAGES.items():
        if category in search_text:
            return image_url

    for pattern, category in FALLBACK_PATTERNS:
        if pattern.search(search_text):
            return FALLBACK_IMAGES[category]

    return FALLBACK_IMAGES['gift']


def search_unsplash(query: str, access_key: Optional[str] = None) -> Optional[str]:
    """First Unsplash search hit, or None"""
    access_key = access_key or setting('UNSPLASH_ACCESS_KEY')
    if not access_key:
        return None
    try:
        response = requests.get(
            'https://api.unsplash.com/search/photos',
            params={'query': clean_product_name(query), 'per_page': 5, 'orientation': 'squarish'},
            headers={'Authorization': f"Client-ID {access_key}"},
            timeout=REQUEST_TIMEOUT,
        )
        if response.ok:
            results = response.json().get('results') or []
            if results:
                return results[0]['urls']['regular']
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.warning(f"Unsplash search failed for '{query}': {str(e)}")
    return None


def search_pexels(query: str, api_key: Optional[str] = None) -> Optional[str]:
    """First Pexels search hit, or None"""
    api_key = api_key or setting('PEXELS_API_KEY')
    if not api_key:
        return None
    try:
        response = requests.get(
            'https://api.pexels.com/v1/search',
            params={'query': clean_product_name(query), 'per_page': 5, 'orientation': 'square'},
            headers={'Authorization': api_key},
            timeout=REQUEST_TIMEOUT,
        )
        if response.ok:
            photos = response.json().get('photos') or []
            if photos:
                return photos[0]['src']['medium']
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.warning(f"Pexels search failed for '{query}': {str(e)}")
    return None


def get_product_image(product_name: str, product_description: Optional[str] = None,
                      access_key: Optional[str] = None) -> str:
    """
    Product photo from Unsplash search

    Args:
        product_name: Gift name
        product_description: Optional description used by the fallback match
        access_key: Unsplash access key (defaults to UNSPLASH_ACCESS_KEY)

    Returns:
        Image URL; the curated fallback when the search is unavailable
    """
    return (search_unsplash(product_name, access_key)
            or get_fallback_image(product_name, product_description))


def get_alternative_product_image(product_name: str, api_key: Optional[str] = None) -> str:
    """Product photo from Pexels search, curated fallback otherwise"""
    return search_pexels(product_name, api_key) or get_fallback_image(product_name)


def resolve_gift_image(product_name: str, search_term: Optional[str] = None,
                       product_url: Optional[str] = None, max_price: Optional[float] = None) -> str:
    """
    Best available image for a recommended gift

    With IMAGE_LOOKUP_ENABLED the chain is: catalog image, Amazon
    Product Advertising API, the ASIN image of an Amazon product link,
    product page metadata, Google Images (when GOOGLE_IMAGES_ENABLED),
    Unsplash search, Pexels search. The curated keyword image is the
    final answer in every case.
    """
    keywords = (search_term or product_name or 'gift').lower()
    if not setting('IMAGE_LOOKUP_ENABLED'):
        return get_reliable_image(keywords)

    # Imported here: those modules import helpers from this one
    from services.amazon_affiliate import get_amazon_image_from_url, get_amazon_product_image
    from services.google_images import get_product_image_from_google
    from services.image_extractor import extract_best_product_image
    from services.product_catalog import get_catalog_product

    product = get_catalog_product(product_name)
    if product is not None:
        return product.image

    query = search_term or product_name
    image = get_amazon_product_image(query, max_price)
    if not image and product_url and 'amazon.' in product_url:
        image = get_amazon_image_from_url(product_url)
    if not image and product_url:
        image = extract_best_product_image(product_url)
    if not image and setting('GOOGLE_IMAGES_ENABLED'):
        image = get_product_image_from_google(product_name)
    if not image:
        image = search_unsplash(query)
    if not image:
        image = search_pexels(query)

    return image or get_reliable_image(keywords)
