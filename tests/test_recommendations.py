"""Recommendation engine: budgets, AI parsing, template fallback and shop links"""

import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from services.recommendations import (
    GENERIC_GIFTS, GIFT_TEMPLATES, GiftRecommendationService, RecommendationError,
    clamp_match, generate_shops, parse_budget, price_range
)

TEMPLATE_NAMES = {g['name'] for gifts in GIFT_TEMPLATES.values() for g in gifts} | {g['name'] for g in GENERIC_GIFTS}


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content=None, error=None):
    completions = FakeCompletions(content, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.fixture
def ctx(memory_app):
    memory_app.config['AMAZON_PARTNER_TAG'] = 'giftgenie-20'
    with memory_app.app_context():
        yield memory_app


@pytest.mark.parametrize('value,expected', [
    (50, 50.0),
    (12.5, 12.5),
    ('100', 100.0),
    ('$1,250', 1250.0),
    ('£75.50', 75.5),
])
def test_parse_budget(value, expected):
    assert parse_budget(value) == expected


@pytest.mark.parametrize('value', [None, True, 0, -5, '', 'abc', '-20', '0.00'])
def test_parse_budget_rejects(value):
    with pytest.raises(RecommendationError):
        parse_budget(value)


def test_clamp_match():
    assert clamp_match(120) == 95
    assert clamp_match(10) == 60
    assert clamp_match('82.4') == 82
    assert clamp_match(None) == 75


def test_price_range():
    assert price_range(45, '£') == '£36 - £54'


def test_uk_shops():
    shops = generate_shops(100, 'GBP', 'Tea Set', 'United Kingdom')
    assert [s['name'] for s in shops] == ['Amazon UK', 'Argos', 'John Lewis']
    assert [s['price'] for s in shops] == ['£100', '£95', '£115']
    assert shops[0]['url'] == 'https://amazon.co.uk/s?k=tea+set'
    assert shops[1]['url'] == 'https://argos.co.uk/search/tea-set'


def test_us_shops():
    shops = generate_shops(100, 'USD', 'Tea Set')
    assert [s['name'] for s in shops] == ['Amazon', 'Target', 'Best Buy']
    assert shops[1]['url'] == 'https://target.com/s?searchTerm=tea%20set'


def test_budget_must_be_positive(ctx):
    with pytest.raises(RecommendationError):
        GiftRecommendationService().generate(['Creative'], ['Art'], 0, 'Jamie')


def test_fallback_respects_budget(ctx):
    recs = GiftRecommendationService().generate(['Sporty'], ['Running'], 50, 'Sam')
    assert {r['name'] for r in recs} == {'Premium Coffee Subscription', 'Artisanal Chocolate Gift Box'}


def test_fallback_mentions_notes_and_currency(ctx):
    recs = GiftRecommendationService().generate(['Creative'], ['Art'], 100, 'Jamie', currency='GBP',
                                                country='United Kingdom', notes='Loves rainy days')
    assert len(recs) >= 5
    watercolor = next(r for r in recs if r['name'] == 'Professional Watercolor Paint Set')
    assert watercolor['description'].endswith('especially meaningful for Jamie who loves rainy days.')
    assert watercolor['price'] == '£36 - £54'
    assert watercolor['matchingTraits'] == ['Creative']
    assert 75 <= watercolor['matchPercentage'] <= 95
    amazon = watercolor['shops'][0]
    assert amazon['name'] == 'Amazon'
    assert amazon['isRealProduct'] is True
    assert amazon['price'].startswith('£')
    assert 'tag=giftgenie-20' in amazon['url']

    coffee = next(r for r in recs if r['name'] == 'Premium Coffee Subscription')
    assert [s['name'] for s in coffee['shops']] == ['Amazon UK', 'Argos', 'John Lewis']
    assert 'tag=giftgenie-20' in coffee['shops'][0]['url']
    assert 'tag=' not in coffee['shops'][1]['url']


def test_ai_recommendations_are_normalised(ctx):
    content = json.dumps({'recommendations': [
        {
            'name': 'Custom Star Map Print',
            'description': 'The night sky from a date that matters.',
            'price': '$40 - $60',
            'matchPercentage': 120,
            'matchingTraits': ['Creative', 'Astronomy'],
            'imageSearchTerm': 'star map poster',
        },
        {'name': 'Wacom Intuos Pro tablet', 'matchPercentage': 'very high'},
        'not a gift',
    ]})
    client, completions = fake_client(content)
    service = GiftRecommendationService(client=client, model='gpt-test')

    recs = service.generate(['Creative'], ['Art'], 300, 'Jamie', notes='Draws every day')

    assert len(recs) == 2
    star, tablet = recs
    assert star['matchPercentage'] == 95
    assert star['matchingTraits'] == ['Creative']
    assert star['price'] == '$40 - $60'
    assert star['image'].startswith('https://')
    assert len(star['shops']) == 3

    assert tablet['matchPercentage'] == 75
    assert tablet['description'] == 'A thoughtful gift recommendation.'
    assert tablet['price'].startswith('$')
    assert all(shop['isRealProduct'] for shop in tablet['shops'])
    amazon = next(s for s in tablet['shops'] if s['name'] == 'Amazon')
    assert amazon['url'].endswith('?tag=giftgenie-20')

    request = completions.calls[0]
    assert request['model'] == 'gpt-test'
    assert request['response_format'] == {'type': 'json_object'}
    assert 'Draws every day' in request['messages'][1]['content']


@pytest.mark.parametrize('kwargs', [
    {'error': OpenAIError('service unavailable')},
    {'content': 'not json'},
    {'content': json.dumps({'recommendations': []})},
])
def test_ai_failures_fall_back_to_templates(ctx, kwargs):
    client, _ = fake_client(**kwargs)
    recs = GiftRecommendationService(client=client).generate(['Outdoorsy'], ['Hiking'], 200, 'Jamie')
    assert recs
    assert {r['name'] for r in recs} <= TEMPLATE_NAMES
