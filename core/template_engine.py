# core/template_engine.py
"""
Email template engine for GiftGenie notifications

Templates are rendered with autoescaping Jinja2, CSS is inlined with
premailer for mail-client compatibility, the result is passed through a
bleach allow-list and a plain-text alternative is derived with
BeautifulSoup.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Dict

from jinja2 import Environment, DictLoader, select_autoescape, StrictUndefined
from jinja2.exceptions import TemplateError
import bleach
from bleach.css_sanitizer import CSSSanitizer
import premailer
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


_BASE_STYLE = """
<style>
  .wrapper { font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #333333; }
  .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: #ffffff; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
  .content { background-color: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
  .details { background-color: #ffffff; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #667eea; }
  .message { background-color: #ffffff; padding: 15px; border-radius: 8px; margin: 20px 0; font-style: italic; }
  .button { display: inline-block; background-color: #667eea; color: #ffffff; padding: 12px 30px; text-decoration: none; border-radius: 25px; font-weight: bold; }
  .footer { text-align: center; margin-top: 30px; color: #666666; font-size: 12px; }
</style>
"""

TEMPLATES = {
    'gift_reminder.html': _BASE_STYLE + """
<div class="wrapper">
  <div class="header">
    <h1>🎁 Gift Reminder</h1>
    <p>Don't forget about {{ friend_name }}!</p>
  </div>
  <div class="content">
    <h2>{{ title }}</h2>
    <div class="details">
      <p><strong>Friend:</strong> {{ friend_name }}</p>
      <p><strong>Occasion:</strong> {{ occasion_type|occasion }}</p>
      <p><strong>Date:</strong> {{ occasion_date }}</p>
    </div>
    {% if message %}
    <div class="message">
      <p>"{{ message }}"</p>
    </div>
    {% endif %}
    <p>This is a friendly reminder that {{ friend_name }}'s {{ occasion_type|occasion|lower }} is coming up. Now is a great time to find the perfect gift!</p>
    <p style="text-align: center;">
      <a class="button" href="{{ webapp_url }}">Find Gift Ideas 🎁</a>
    </p>
    <div class="footer">
      <p>This reminder was sent by GiftGenie. To manage your reminders, visit your dashboard.</p>
    </div>
  </div>
</div>
""",
    'test_email.html': _BASE_STYLE + """
<div class="wrapper">
  <div class="header">
    <h1>🎁 GiftGenie</h1>
  </div>
  <div class="content">
    <h2>Email configuration works</h2>
    <p>If you can read this, GiftGenie can deliver gift reminders to {{ recipient }}.</p>
    <div class="footer">
      <p>Sent at {{ sent_at }}</p>
    </div>
  </div>
</div>
""",
}

EMAIL_SAFE_TAGS = [
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 'h1', 'h2', 'h3',
    'ul', 'ol', 'li', 'a', 'img', 'div', 'span', 'hr'
]
EMAIL_SAFE_ATTRIBUTES = {
    '*': ['class', 'style'],
    'a': ['href', 'title', 'rel', 'target'],
    'img': ['src', 'alt', 'width', 'height'],
}


@dataclass
class RenderedEmail:
    """Rendered HTML body and its plain-text alternative"""
    html: str
    text: str


def occasion_label(value: str) -> str:
    """birthday -> Birthday, baby_shower -> Baby Shower"""
    return ' '.join(word.capitalize() for word in (value or 'special occasion').replace('_', ' ').split())


class EmailTemplateEngine:
    """Renders the built-in notification templates"""

    def __init__(self, templates: Dict[str, str] = None, enable_css_inlining: bool = True):
        self.enable_css_inlining = enable_css_inlining
        self.env = Environment(
            loader=DictLoader(templates or TEMPLATES),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters['occasion'] = occasion_label

        self.css_sanitizer = CSSSanitizer(
            allowed_css_properties=[
                'color', 'background-color', 'background', 'font-family', 'font-size',
                'font-weight', 'font-style', 'text-align', 'text-decoration',
                'margin', 'padding', 'border', 'border-left', 'border-radius',
                'max-width', 'display'
            ],
            allowed_svg_properties=[],
        )
        self.html_cleaner = bleach.Cleaner(
            tags=EMAIL_SAFE_TAGS,
            attributes=EMAIL_SAFE_ATTRIBUTES,
            css_sanitizer=self.css_sanitizer,
            strip=True,
            strip_comments=True,
        )

    def render(self, template_name: str, variables: Dict[str, Any]) -> RenderedEmail:
        """
        Render a named template into sanitized HTML and plain text

        Args:
            template_name: Key of the template (e.g. 'gift_reminder.html')
            variables: Template variables

        Returns:
            RenderedEmail with html and text parts
        """
        try:
            rendered = self.env.get_template(template_name).render(**variables)
        except TemplateError as e:
            logger.error(f"Template rendering failed for {template_name}: {str(e)}")
            raise

        if self.enable_css_inlining:
            rendered = self._inline_css(rendered)
        html = self.html_cleaner.clean(rendered).strip()
        return RenderedEmail(html=html, text=self._html_to_text(html))

    def _inline_css(self, html_content: str) -> str:
        try:
            return premailer.Premailer(
                html_content,
                remove_classes=False,
                keep_style_tags=False,
                strip_important=False,
                external_styles=None,
                disable_validation=True,
            ).transform()
        except Exception as e:
            # Sanitizing still runs on the un-inlined markup
            logger.warning(f"CSS inlining failed: {str(e)}")
            return re.sub(r'<style.*?</style>', '', html_content, flags=re.DOTALL)

    @staticmethod
    def _html_to_text(html_content: str) -> str:
        if not html_content:
            return ''

        soup = BeautifulSoup(html_content, 'html.parser')
        for br in soup.find_all('br'):
            br.replace_with('\n')
        for block in soup.find_all(['p', 'h1', 'h2', 'h3', 'div']):
            block.insert_after('\n')
        for link in soup.find_all('a', href=True):
            link_text = link.get_text()
            if link['href'] != link_text:
                link.replace_with(f"{link_text} ({link['href']})")

        text = soup.get_text()
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n\s*\n+', '\n\n', text)
        return text.strip()


_engine = None


def get_template_engine() -> EmailTemplateEngine:
    global _engine
    if _engine is None:
        _engine = EmailTemplateEngine()
    return _engine
