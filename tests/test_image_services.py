"""Image lookup helpers with all HTTP calls stubbed"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import requests

from services import amazon_affiliate, google_images, image_extractor, image_service
from services.amazon_affiliate import add_affiliate_tag, extract_asin, sign_request
from services.image_service import DEFAULT_GIFT_IMAGE, clean_product_name, get_fallback_image, get_reliable_image
from services.product_catalog import find_best_product_match, generate_real_product_urls


def response(status=200, text='', json_data=None, headers=None):
    return SimpleNamespace(ok=status < 400, status_code=status, text=text,
                           json=lambda: json_data, headers=headers or {})


PRODUCT_PAGE = """
<html><head>
<meta name="twitter:image" content="https://cdn.shop.test/twitter.jpg">
<script type="application/ld+json">{"@type": "Product", "image": ["https://cdn.shop.test/ld.jpg"]}</script>
</head><body></body></html>
"""


def test_reliable_image_keywords():
    assert 'photo-1447933601403' in get_reliable_image('Premium Coffee Subscription')
    assert get_reliable_image('mystery box') == DEFAULT_GIFT_IMAGE


def test_clean_product_name():
    assert clean_product_name('The Ultimate Coffee Grinder for Espresso Lovers') == 'ultimate coffee grinder'
    assert clean_product_name("A Kid's Telescope") == 'kid s telescope'


def test_fallback_image_patterns():
    assert 'photo-1495474472287' in get_fallback_image('Espresso starter kit')
    assert 'photo-1511707171634' in get_fallback_image('Smartphone gimbal')
    assert get_fallback_image('Something else') == image_service.FALLBACK_IMAGES['gift']


def test_unsplash_search(monkeypatch):
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append((url, params, headers))
        return response(json_data={'results': [{'urls': {'regular': 'https://unsplash.test/1.jpg'}}]})

    monkeypatch.setattr(image_service.requests, 'get', fake_get)
    assert image_service.get_product_image('The Cozy Blanket', access_key='key') == 'https://unsplash.test/1.jpg'
    assert calls[0][1]['query'] == 'cozy blanket'
    assert calls[0][2] == {'Authorization': 'Client-ID key'}


def test_unsplash_failure_uses_fallback(monkeypatch):
    def broken(*args, **kwargs):
        raise requests.ConnectionError('offline')

    monkeypatch.setattr(image_service.requests, 'get', broken)
    assert image_service.get_product_image('Wool blanket', access_key='key') == image_service.FALLBACK_IMAGES['blanket']


def test_extract_image_prefers_open_graph():
    html = '<meta property="og:image" content="https://cdn.shop.test/og.jpg">' + PRODUCT_PAGE
    assert image_extractor.extract_image_from_html(html) == 'https://cdn.shop.test/og.jpg'
    assert image_extractor.extract_image_from_html(PRODUCT_PAGE) == 'https://cdn.shop.test/twitter.jpg'


def test_extract_image_from_json_ld():
    assert image_extractor.extract_image_from_json_ld(
        [{'@type': 'Organization'}, {'image': {'url': 'https://x.test/a.png'}}]) == 'https://x.test/a.png'
    assert image_extractor.extract_image_from_json_ld(
        {'offers': {'image': 'https://x.test/offer.png'}}) == 'https://x.test/offer.png'
    assert image_extractor.extract_image_from_json_ld({'name': 'nothing'}) is None


def test_extract_best_product_image(monkeypatch):
    monkeypatch.setattr(image_extractor.requests, 'get', lambda *a, **k: response(text=PRODUCT_PAGE))
    assert image_extractor.extract_best_product_image('https://shop.test/p/1') == 'https://cdn.shop.test/twitter.jpg'
    # search pages are never fetched
    assert image_extractor.extract_best_product_image('https://amazon.com/s?k=mug') is None


def test_google_candidates_filter_google_hosts():
    html = ('"https://encrypted-tbn0.gstatic.com/images?q=1.jpg" '
            '["https://cdn.store.test/products/mug-large.jpg",600,600] '
            'data-src="https://cdn.store.test/products/mug-small.png"')
    assert google_images.extract_image_candidates(html) == [
        'https://cdn.store.test/products/mug-large.jpg',
        'https://cdn.store.test/products/mug-small.png',
    ]


def test_google_image_result_validates_candidates(monkeypatch):
    html = '"https://cdn.store.test/a/broken.jpg" "https://cdn.store.test/a/good.jpg"'
    monkeypatch.setattr(google_images.requests, 'get', lambda *a, **k: response(text=html))

    def fake_head(url, **kwargs):
        content_type = 'image/jpeg' if 'good' in url else 'text/html'
        return response(headers={'content-type': content_type})

    monkeypatch.setattr(google_images.requests, 'head', fake_head)
    assert google_images.get_google_image_result('ceramic mug!') == 'https://cdn.store.test/a/good.jpg'
    assert google_images.get_google_image_result('!!!') is None


def test_affiliate_tag():
    assert add_affiliate_tag('https://www.amazon.com/dp/B000000001', 'gg-20') == 'https://www.amazon.com/dp/B000000001?tag=gg-20'
    assert add_affiliate_tag('https://amazon.co.uk/s?k=mug&tag=old', 'gg-21') == 'https://amazon.co.uk/s?k=mug&tag=gg-21'
    assert add_affiliate_tag('https://target.com/s?searchTerm=mug', 'gg-20') == 'https://target.com/s?searchTerm=mug'
    assert add_affiliate_tag('https://www.amazon.com/dp/B000000001', '') == 'https://www.amazon.com/dp/B000000001'


def test_extract_asin():
    assert extract_asin('https://www.amazon.com/Kindle/dp/B08KTZ8249?ref=x') == 'B08KTZ8249'
    assert extract_asin('https://www.amazon.com/s?k=kindle') is None


def test_sign_request_is_deterministic():
    now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    first = sign_request('{"Keywords": "mug"}', 'AKID', 'secret', now=now)
    second = sign_request('{"Keywords": "mug"}', 'AKID', 'secret', now=now)
    other = sign_request('{"Keywords": "cup"}', 'AKID', 'secret', now=now)

    assert first == second
    assert first['Authorization'] != other['Authorization']
    assert first['x-amz-date'] == '20260102T030405Z'
    assert first['Authorization'].startswith(
        'AWS4-HMAC-SHA256 Credential=AKID/20260102/us-east-1/ProductAdvertisingAPI/aws4_request, '
        'SignedHeaders=content-encoding;content-type;host;x-amz-date;x-amz-target, Signature=')


def test_amazon_image_search_respects_budget(memory_app, monkeypatch):
    memory_app.config.update(AMAZON_ACCESS_KEY='AKID', AMAZON_SECRET_KEY='secret', AMAZON_PARTNER_TAG='gg-20')
    items = [
        {'Offers': {'Listings': [{'Price': {'Amount': 250.0}}]},
         'Images': {'Primary': {'Large': {'URL': 'https://m.media-amazon.com/expensive.jpg'}}}},
        {'Offers': {'Listings': [{'Price': {'Amount': 40.0}}]},
         'Images': {'Primary': {'Large': {'URL': 'https://m.media-amazon.com/affordable.jpg'}}}},
    ]
    monkeypatch.setattr(amazon_affiliate.requests, 'post',
                        lambda *a, **k: response(json_data={'SearchResult': {'Items': items}}))

    with memory_app.app_context():
        assert amazon_affiliate.get_amazon_product_image('mug', max_price=100) == 'https://m.media-amazon.com/affordable.jpg'


def test_amazon_image_search_needs_credentials(memory_app):
    memory_app.config.update(AMAZON_ACCESS_KEY='', AMAZON_SECRET_KEY='', AMAZON_PARTNER_TAG='')
    with memory_app.app_context():
        assert amazon_affiliate.get_amazon_product_image('mug') is None


def test_catalog_matching():
    assert find_best_product_match('Kindle Paperwhite Signature Edition') == 'kindle paperwhite'
    assert find_best_product_match('Insulated travel mug') == 'stanley tumbler'
    assert find_best_product_match('Hand-knitted scarf') is None


def test_catalog_urls_skip_us_only_stores_for_uk():
    shops = generate_real_product_urls('Nintendo Switch OLED', 'United Kingdom', 300)
    assert [s['name'] for s in shops] == ['Amazon', 'Nintendo', 'Gamestop']
    assert all(s['price'].startswith('£') for s in shops)
    assert generate_real_product_urls('Hand-knitted scarf', 'United States', 30) is None


@pytest.mark.parametrize('enabled', [False, True])
def test_resolve_gift_image(memory_app, monkeypatch, enabled):
    memory_app.config['IMAGE_LOOKUP_ENABLED'] = enabled
    monkeypatch.setattr(amazon_affiliate, 'get_amazon_product_image', lambda *a, **k: None)
    monkeypatch.setattr(image_extractor, 'extract_best_product_image', lambda url: 'https://shop.test/page.jpg')

    with memory_app.app_context():
        image = image_service.resolve_gift_image('Handmade mug', 'coffee mug', 'https://shop.test/p/1')

    if enabled:
        assert image == 'https://shop.test/page.jpg'
    else:
        assert image == get_reliable_image('coffee mug')


def test_pexels_search(monkeypatch):
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append((url, params, headers))
        return response(json_data={'photos': [{'src': {'medium': 'https://pexels.test/1.jpg'}}]})

    monkeypatch.setattr(image_service.requests, 'get', fake_get)
    assert image_service.get_alternative_product_image('The Cozy Blanket', api_key='px-key') == 'https://pexels.test/1.jpg'
    assert calls[0][0] == 'https://api.pexels.com/v1/search'
    assert calls[0][1]['query'] == 'cozy blanket'
    assert calls[0][2] == {'Authorization': 'px-key'}


def test_pexels_empty_result_uses_fallback(monkeypatch):
    monkeypatch.setattr(image_service.requests, 'get', lambda *a, **k: response(json_data={'photos': []}))
    assert image_service.get_alternative_product_image('Wool blanket', api_key='px-key') == \
        image_service.FALLBACK_IMAGES['blanket']


def test_amazon_image_from_url(monkeypatch):
    heads = []

    def fake_head(url, **kwargs):
        heads.append(url)
        return response(status=200 if 'B08KTZ8249' in url else 404)

    monkeypatch.setattr(amazon_affiliate.requests, 'head', fake_head)
    assert amazon_affiliate.get_amazon_image_from_url('https://www.amazon.com/Kindle/dp/B08KTZ8249') == \
        'https://m.media-amazon.com/images/I/B08KTZ8249._AC_SL1500_.jpg'
    assert amazon_affiliate.get_amazon_image_from_url('https://www.amazon.com/gp/product/B000000000') is None
    assert amazon_affiliate.get_amazon_image_from_url('https://www.amazon.com/s?k=kindle') is None
    assert len(heads) == 2


def test_resolve_gift_image_uses_amazon_product_link(memory_app, monkeypatch):
    memory_app.config['IMAGE_LOOKUP_ENABLED'] = True
    monkeypatch.setattr(amazon_affiliate, 'get_amazon_product_image', lambda *a, **k: None)
    monkeypatch.setattr(amazon_affiliate.requests, 'head', lambda url, **kwargs: response())

    def page_fetch(url):
        raise AssertionError('product page should not be fetched')

    monkeypatch.setattr(image_extractor, 'extract_best_product_image', page_fetch)

    with memory_app.app_context():
        image = image_service.resolve_gift_image('Hand-knitted scarf', 'wool scarf',
                                                 'https://www.amazon.co.uk/dp/B0C1234567')
    assert image == 'https://m.media-amazon.com/images/I/B0C1234567._AC_SL1500_.jpg'


def test_resolve_gift_image_falls_through_to_pexels(memory_app, monkeypatch):
    memory_app.config.update(IMAGE_LOOKUP_ENABLED=True, UNSPLASH_ACCESS_KEY='', PEXELS_API_KEY='px-key')
    monkeypatch.setattr(amazon_affiliate, 'get_amazon_product_image', lambda *a, **k: None)
    monkeypatch.setattr(image_service.requests, 'get', lambda url, **kwargs: response(
        json_data={'photos': [{'src': {'medium': 'https://pexels.test/scarf.jpg'}}]}))

    with memory_app.app_context():
        assert image_service.resolve_gift_image('Hand-knitted scarf', 'wool scarf') == 'https://pexels.test/scarf.jpg'
