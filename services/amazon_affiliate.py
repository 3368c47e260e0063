# services/amazon_affiliate.py
"""
Amazon Product Advertising API 5 image lookup and affiliate links
"""

import hashlib
import hmac
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

import requests

from services.image_service import setting

logger = logging.getLogger(__name__)

AMAZON_HOST = 'webservices.amazon.com'
AMAZON_REGION = 'us-east-1'
AMAZON_SERVICE = 'ProductAdvertisingAPI'
SEARCH_ITEMS_PATH = '/paapi5/searchitems'
SEARCH_ITEMS_TARGET = 'com.amazon.paapi5.v1.ProductAdvertisingAPIv1.SearchItems'

ASIN_PATTERN = re.compile(r'/(?:dp|gp/product|product)/([A-Z0-9]{10})')


def add_affiliate_tag(url: str, tag: Optional[str] = None) -> str:
    """Add the Amazon associate tag to an Amazon URL, other URLs unchanged"""
    tag = (tag if tag is not None else setting('AMAZON_PARTNER_TAG')) or ''
    if not url or not tag.strip() or 'amazon.' not in url.lower():
        return url
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    query['tag'] = [tag.strip()]
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


def _hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode('utf-8'), hashlib.sha256).digest()


def sign_request(payload: str, access_key: str, secret_key: str,
                 now: Optional[datetime] = None) -> Dict[str, str]:
    """
    AWS Signature Version 4 headers for a SearchItems call

    Args:
        payload: JSON request body
        access_key: PA-API access key
        secret_key: PA-API secret key
        now: Signing time (defaults to current UTC time)

    Returns:
        Headers to send with the request
    """
    now = now or datetime.now(timezone.utc)
    amz_date = now.strftime('%Y%m%dT%H%M%SZ')
    date_stamp = now.strftime('%Y%m%d')

    headers = {
        'content-encoding': 'amz-1.0',
        'content-type': 'application/json; charset=utf-8',
        'host': AMAZON_HOST,
        'x-amz-date': amz_date,
        'x-amz-target': SEARCH_ITEMS_TARGET,
    }
    signed_headers = ';'.join(sorted(headers))
    canonical_headers = ''.join(f"{name}:{headers[name]}\n" for name in sorted(headers))
    payload_hash = hashlib.sha256(payload.encode('utf-8')).hexdigest()
    canonical_request = '\n'.join([
        'POST', SEARCH_ITEMS_PATH, '', canonical_headers, signed_headers, payload_hash
    ])

    credential_scope = f"{date_stamp}/{AMAZON_REGION}/{AMAZON_SERVICE}/aws4_request"
    string_to_sign = '\n'.join([
        'AWS4-HMAC-SHA256', amz_date, credential_scope,
        hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()
    ])

    signing_key = _hmac_sha256(('AWS4' + secret_key).encode('utf-8'), date_stamp)
    for part in (AMAZON_REGION, AMAZON_SERVICE, 'aws4_request'):
        signing_key = _hmac_sha256(signing_key, part)
    signature = hmac.new(signing_key, string_to_sign.encode('utf-8'), hashlib.sha256).hexdigest()

    headers['Authorization'] = (
        f"AWS4-HMAC-SHA256 Credential={access_key}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return headers


def _item_price(item: Dict[str, Any]) -> Optional[float]:
    listings = (item.get('Offers') or {}).get('Listings') or []
    if listings:
        return (listings[0].get('Price') or {}).get('Amount')
    return None


def get_amazon_product_image(product_name: str, max_price: Optional[float] = None) -> Optional[str]:
    """
    Primary image of the first in-budget Amazon search result

    Returns None when credentials are missing or the API call fails.
    """
    access_key = setting('AMAZON_ACCESS_KEY')
    secret_key = setting('AMAZON_SECRET_KEY')
    partner_tag = setting('AMAZON_PARTNER_TAG')
    if not (access_key and secret_key and partner_tag):
        logger.debug("Amazon PA-API credentials not configured, skipping image search")
        return None

    payload = json.dumps({
        'Keywords': product_name,
        'SearchIndex': 'All',
        'ItemCount': 3,
        'PartnerTag': partner_tag,
        'PartnerType': 'Associates',
        'Marketplace': 'www.amazon.com',
        'Resources': [
            'Images.Primary.Large',
            'Images.Variants.Large',
            'ItemInfo.Title',
            'ItemInfo.ByLineInfo',
            'Offers.Listings.Price',
        ],
    })

    try:
        response = requests.post(
            f"https://{AMAZON_HOST}{SEARCH_ITEMS_PATH}",
            data=payload,
            headers=sign_request(payload, access_key, secret_key),
            timeout=10,
        )
        if not response.ok:
            logger.warning(f"Amazon PA-API returned HTTP {response.status_code} for '{product_name}'")
            return None
        items = (response.json().get('SearchResult') or {}).get('Items') or []
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Amazon PA-API search failed for '{product_name}': {str(e)}")
        return None

    for item in items:
        price = _item_price(item)
        if max_price and price is not None and price > max_price:
            continue
        image = (((item.get('Images') or {}).get('Primary') or {}).get('Large') or {}).get('URL')
        if image:
            return image
    return None


def extract_asin(amazon_url: str) -> Optional[str]:
    match = ASIN_PATTERN.search(amazon_url or '')
    return match.group(1) if match else None


def get_amazon_image_from_url(amazon_url: str) -> Optional[str]:
    """Image URL built from the ASIN of an Amazon product link, if it resolves"""
    asin = extract_asin(amazon_url)
    if not asin:
        return None

    image_url = f"https://m.media-amazon.com/images/I/{asin}._AC_SL1500_.jpg"
    try:
        response = requests.head(image_url, timeout=5, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug(f"Could not validate Amazon image {image_url}: {str(e)}")
        return None
    return image_url if response.ok else None
