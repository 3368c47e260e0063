# services/recommendations.py
"""
Gift recommendation engine

Ideas come from the OpenAI chat-completions API when a key is configured.
Without a key, or when the call fails, a template catalogue keyed by
personality trait produces the recommendations instead.
"""

import re
import json
import random
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from services.amazon_affiliate import add_affiliate_tag
from services.image_service import get_reliable_image, resolve_gift_image, setting
from services.product_catalog import generate_real_product_urls

logger = logging.getLogger(__name__)


class RecommendationError(Exception):
    """Invalid recommendation request"""
    pass


def parse_budget(value: Any) -> float:
    """
    Budget as a positive number; strings such as '£50' have their
    non-numeric characters stripped
    """
    if isinstance(value, bool) or value is None:
        raise RecommendationError('Budget is required')
    if isinstance(value, (int, float)):
        budget = float(value)
    else:
        cleaned = re.sub(r'[^0-9.\-]', '', str(value))
        try:
            budget = float(cleaned)
        except ValueError:
            raise RecommendationError(f"Invalid budget: {value}")
    if budget <= 0:
        raise RecommendationError('Budget must be greater than zero')
    return budget


CURRENCY_SYMBOLS = {
    'USD': '$', 'EUR': '€', 'GBP': '£', 'CAD': 'C$', 'AUD': 'A$',
    'JPY': '¥', 'KRW': '₩', 'BRL': 'R$', 'MXN': 'MX$', 'INR': '₹',
}

SYSTEM_PROMPT = ("You are an expert gift recommendation assistant. Provide thoughtful, "
                 "personalized gift suggestions in valid JSON format.")

_IMG = 'https://images.unsplash.com/{}?ixlib=rb-4.0.3&auto=format&fit=crop&w=400&h=250'

GIFT_TEMPLATES: Dict[str, List[Dict[str, Any]]] = {
    'Creative': [
        {
            'name': 'Professional Watercolor Paint Set',
            'description': 'A premium 36-color watercolor set perfect for unleashing creativity with vibrant, blendable colors and professional-grade brushes.',
            'base_price': 45,
            'image': _IMG.format('photo-1513475382585-d06e58bcb0e0'),
            'matching_traits': ['Creative', 'Artistic'],
        },
        {
            'name': 'Digital Drawing Tablet',
            'description': 'A responsive graphics tablet that brings digital art to life, perfect for creative minds who love technology.',
            'base_price': 89,
            'image': _IMG.format('photo-1558618666-fcd25c85cd64'),
            'matching_traits': ['Creative', 'Tech-savvy'],
        },
    ],
    'Sporty': [
        {
            'name': 'Wireless Fitness Tracker',
            'description': 'Advanced fitness tracker with heart rate monitoring, GPS, and workout tracking to fuel their athletic passion.',
            'base_price': 95,
            'image': _IMG.format('photo-1544117519-31a4b719223d'),
            'matching_traits': ['Sporty', 'Tech-savvy'],
        },
        {
            'name': 'Premium Yoga Mat Set',
            'description': 'Eco-friendly yoga mat with alignment guides and accessories, perfect for fitness enthusiasts who value quality.',
            'base_price': 55,
            'image': _IMG.format('photo-1506905925346-21bda4d32df4'),
            'matching_traits': ['Sporty', 'Thoughtful'],
        },
    ],
    'Tech-savvy': [
        {
            'name': 'Smart Home Assistant Hub',
            'description': 'Voice-controlled smart hub that connects all their devices and makes life more convenient through technology.',
            'base_price': 79,
            'image': _IMG.format('photo-1507003211169-0a1dd7228f2d'),
            'matching_traits': ['Tech-savvy', 'Innovative'],
        },
        {
            'name': 'Mechanical Gaming Keyboard',
            'description': 'Professional-grade mechanical keyboard with customizable RGB lighting, perfect for tech enthusiasts.',
            'base_price': 125,
            'image': _IMG.format('photo-1541140532154-b024d705b90a'),
            'matching_traits': ['Tech-savvy', 'Gaming'],
        },
    ],
    'Outdoorsy': [
        {
            'name': 'Portable Camping Chair',
            'description': 'Lightweight, durable camping chair that packs small but provides maximum comfort for outdoor adventures.',
            'base_price': 65,
            'image': _IMG.format('photo-1487730116645-74489c95b41b'),
            'matching_traits': ['Outdoorsy', 'Adventurous'],
        },
        {
            'name': 'Professional Hiking Backpack',
            'description': 'Ergonomic hiking backpack with multiple compartments and hydration system, built for serious outdoor enthusiasts.',
            'base_price': 145,
            'image': _IMG.format('photo-1516892366775-8d24e1b9d8b9'),
            'matching_traits': ['Outdoorsy', 'Adventurous'],
        },
    ],
    'Artistic': [
        {
            'name': 'Sketching Pencil Set',
            'description': 'Professional artist pencil set with various hardness levels, perfect for detailed drawings and artistic expression.',
            'base_price': 35,
            'image': _IMG.format('photo-1513475382585-d06e58bcb0e0'),
            'matching_traits': ['Artistic', 'Creative'],
        },
        {
            'name': 'Acrylic Paint Starter Kit',
            'description': 'Complete acrylic painting kit with canvas, brushes, and vibrant colors for bringing artistic visions to life.',
            'base_price': 58,
            'image': _IMG.format('photo-1460661419201-fd4cecdf8a8b'),
            'matching_traits': ['Artistic', 'Creative'],
        },
    ],
}

GENERIC_GIFTS = [
    {
        'name': 'Premium Coffee Subscription',
        'description': 'Monthly delivery of freshly roasted, ethically sourced coffee beans from around the world.',
        'base_price': 25,
        'image': _IMG.format('photo-1447933601403-0c6688de566e'),
        'matching_traits': ['Thoughtful'],
    },
    {
        'name': 'Bluetooth Wireless Headphones',
        'description': 'High-quality wireless headphones with noise cancellation and premium sound quality.',
        'base_price': 89,
        'image': _IMG.format('photo-1505740420928-5e560c06d30e'),
        'matching_traits': ['Tech-savvy'],
    },
    {
        'name': 'Artisanal Chocolate Gift Box',
        'description': 'Curated selection of premium handcrafted chocolates with unique flavors and elegant presentation.',
        'base_price': 35,
        'image': _IMG.format('photo-1511910849309-0dffb8785146'),
        'matching_traits': ['Thoughtful'],
    },
]

# (store, price multiplier, search URL prefix, word separator)
UK_SHOPS = [
    ('Amazon UK', 1.0, 'https://amazon.co.uk/s?k=', '+'),
    ('Argos', 0.95, 'https://argos.co.uk/search/', '-'),
    ('John Lewis', 1.15, 'https://johnlewis.com/search?search-term=', '%20'),
    ('Currys', 1.05, 'https://currys.co.uk/search?q=', '+'),
    ('ASOS', 0.9, 'https://asos.com/search/?q=', '%20'),
]
US_SHOPS = [
    ('Amazon', 1.0, 'https://amazon.com/s?k=', '+'),
    ('Target', 0.95, 'https://target.com/s?searchTerm=', '%20'),
    ('Best Buy', 1.1, 'https://bestbuy.com/site/searchpage.jsp?st=', '+'),
    ('Walmart', 0.85, 'https://walmart.com/search/?query=', '%20'),
    ('REI', 1.15, 'https://rei.com/search?q=', '+'),
]

MIN_MATCH = 60
MAX_MATCH = 95
DEFAULT_MATCH = 75
MAX_FALLBACK_RESULTS = 6
MIN_FALLBACK_RESULTS = 5


def get_currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get((currency or '').upper(), '$')


def is_uk(country: str) -> bool:
    country = (country or '').lower()
    return 'kingdom' in country or 'uk' in country


def price_range(base_price: float, symbol: str) -> str:
    return f"{symbol}{round(base_price * 0.8)} - {symbol}{round(base_price * 1.2)}"


def generate_shops(base_price: float, currency: str, product_name: str = 'gift',
                   country: str = 'United States') -> List[Dict[str, Any]]:
    """
    Store search links for a gift

    Args:
        base_price: Reference price; each store applies its multiplier
        currency: Friend's currency code
        product_name: Gift name used as the search term
        country: UK shoppers get UK stores, everyone else US stores

    Returns:
        Three shop dicts {name, price, inStock, url}
    """
    symbol = get_currency_symbol(currency)
    shops = UK_SHOPS if is_uk(country) else US_SHOPS
    words = (product_name or 'gift').lower().split()

    return [{
        'name': name,
        'price': f"{symbol}{round(base_price * multiplier)}",
        'inStock': random.random() > 0.2,
        'url': base_url + separator.join(words),
    } for name, multiplier, base_url, separator in shops[:3]]


def build_shops(base_price: float, currency: str, product_name: str, country: str) -> List[Dict[str, Any]]:
    """Curated product links when the catalog knows the gift, store searches otherwise"""
    shops = generate_real_product_urls(product_name, country, base_price) or \
        generate_shops(base_price, currency, product_name, country)
    for shop in shops:
        shop['url'] = add_affiliate_tag(shop['url'])
    return shops


def build_prompt(traits: List[str], interests: List[str], budget: float, friend_name: str,
                 currency: str, notes: Optional[str]) -> str:
    symbol = get_currency_symbol(currency)
    context = f"\n\nAdditional context about {friend_name}: {notes}" if notes else ''
    return f"""You are a thoughtful gift recommendation expert. Generate 5-6 personalized gift ideas for {friend_name} based on their profile:

Personality Traits: {', '.join(traits)}
Interests: {', '.join(interests)}
Budget: {symbol}{budget}
Currency: {currency}{context}

For each gift recommendation, provide:
1. A creative, specific gift name
2. A detailed description (2-3 sentences) explaining why it's perfect for them
3. An estimated price range within budget
4. A match percentage (how well it fits their profile)
5. Which specific traits/interests it matches
6. A realistic image search term for the gift

Consider their personality and interests deeply. Be creative and think of unique, thoughtful gifts that someone with these specific traits would genuinely appreciate. Avoid generic suggestions.

Respond in JSON format with this structure:
{{
  "recommendations": [
    {{
      "name": "Gift name",
      "description": "Why this gift is perfect for them...",
      "price": "{symbol}XX - {symbol}XX",
      "matchPercentage": 85,
      "matchingTraits": ["trait1", "trait2"],
      "imageSearchTerm": "professional art supplies"
    }}
  ]
}}"""


def clamp_match(value: Any) -> int:
    try:
        value = int(round(float(value)))
    except (TypeError, ValueError):
        value = DEFAULT_MATCH
    return min(MAX_MATCH, max(MIN_MATCH, value))


class GiftRecommendationService:
    """Generates GiftRecommendation dicts for a friend profile"""

    def __init__(self, api_key: Optional[str] = None, model: str = 'gpt-4o', client: Any = None):
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = OpenAI(api_key=api_key)

    def generate(self, traits: List[str], interests: List[str], budget: float, friend_name: str,
                 currency: str = 'USD', country: str = 'United States',
                 notes: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Recommend gifts for a friend

        Args:
            traits: Personality traits
            interests: Interests
            budget: Maximum spend in the friend's currency
            friend_name: Name used in prompts and descriptions
            currency: Currency code for prices
            country: Country used to pick stores
            notes: Free-text notes about the friend

        Returns:
            List of recommendation dicts

        Raises:
            RecommendationError: Budget is not positive
        """
        if budget <= 0:
            raise RecommendationError('Budget must be greater than zero')

        if self.client is None:
            logger.info(f"OpenAI not configured, using template recommendations for {friend_name}")
            return self.generate_fallback(traits, interests, budget, friend_name, currency, country, notes)

        try:
            recommendations = self._generate_with_ai(traits, interests, budget, friend_name,
                                                     currency, country, notes)
        except (OpenAIError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"OpenAI recommendation request failed: {str(e)}")
            return self.generate_fallback(traits, interests, budget, friend_name, currency, country, notes)

        if not recommendations:
            logger.warning(f"OpenAI returned no recommendations for {friend_name}, using templates")
            return self.generate_fallback(traits, interests, budget, friend_name, currency, country, notes)

        logger.info(f"Generated {len(recommendations)} AI recommendations for {friend_name}")
        return recommendations

    def _generate_with_ai(self, traits, interests, budget, friend_name, currency, country, notes):
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': build_prompt(traits, interests, budget, friend_name, currency, notes)},
            ],
            response_format={'type': 'json_object'},
            temperature=0.8,
            max_tokens=2000,
        )
        payload = json.loads(response.choices[0].message.content or '{}')

        symbol = get_currency_symbol(currency)
        profile_terms = set(traits) | set(interests)
        recommendations = []
        for idea in payload.get('recommendations') or []:
            if not isinstance(idea, dict):
                continue
            name = idea.get('name') or 'Personalized Gift'
            base_price = random.random() * (budget * 0.8) + budget * 0.2
            shops = build_shops(base_price, currency, name, country)
            real_url = next((shop['url'] for shop in shops if shop.get('isRealProduct')), None)

            recommendations.append({
                'name': name,
                'description': idea.get('description') or 'A thoughtful gift recommendation.',
                'price': idea.get('price') or price_range(base_price, symbol),
                'matchPercentage': clamp_match(idea.get('matchPercentage', DEFAULT_MATCH)),
                'matchingTraits': [t for t in idea.get('matchingTraits') or [] if t in profile_terms],
                'image': resolve_gift_image(name, idea.get('imageSearchTerm'), real_url, budget),
                'shops': shops,
            })
        return recommendations

    def generate_fallback(self, traits: List[str], interests: List[str], budget: float,
                          friend_name: str, currency: str = 'USD', country: str = 'United States',
                          notes: Optional[str] = None) -> List[Dict[str, Any]]:
        symbol = get_currency_symbol(currency)
        recommendations = []
        used = set()

        def add(gift, match_percentage, description):
            used.add(gift['name'])
            recommendations.append({
                'name': gift['name'],
                'description': description,
                'price': price_range(gift['base_price'], symbol),
                'matchPercentage': match_percentage,
                'matchingTraits': [t for t in gift['matching_traits'] if t in traits],
                'image': gift['image'] or get_reliable_image(gift['name']),
                'shops': build_shops(gift['base_price'], currency, gift['name'], country),
            })

        for trait in traits:
            for gift in GIFT_TEMPLATES.get(trait, []):
                if len(recommendations) >= MAX_FALLBACK_RESULTS:
                    break
                if gift['base_price'] <= budget and gift['name'] not in used:
                    description = gift['description']
                    if notes:
                        description += f" This would be especially meaningful for {friend_name} who {notes.lower()}."
                    add(gift, round(75 + random.random() * 20), description)

        while len(recommendations) < MIN_FALLBACK_RESULTS:
            available = [g for g in GENERIC_GIFTS if g['base_price'] <= budget and g['name'] not in used]
            if not available:
                break
            gift = random.choice(available)
            add(gift, round(60 + random.random() * 25), gift['description'])

        logger.info(f"Generated {len(recommendations)} template recommendations for {friend_name}")
        return recommendations


def get_recommendation_service() -> GiftRecommendationService:
    from flask import current_app
    service = current_app.extensions.get('recommendation_service')
    if service is None:
        service = GiftRecommendationService(api_key=setting('OPENAI_API_KEY'),
                                            model=setting('OPENAI_MODEL') or 'gpt-4o')
        current_app.extensions['recommendation_service'] = service
    return service


def generate_gift_recommendations(traits: List[str], interests: List[str], budget: float,
                                  friend_name: str, currency: str = 'USD',
                                  country: str = 'United States',
                                  notes: Optional[str] = None) -> List[Dict[str, Any]]:
    return get_recommendation_service().generate(traits, interests, budget, friend_name,
                                                 currency, country, notes)
