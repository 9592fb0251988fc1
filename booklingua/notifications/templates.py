# notifications/templates.py
"""Plantillas HTML de los emails de entrega. Textos de cara al cliente en inglés."""
from dataclasses import dataclass
from html import escape

from booklingua.highlight import MarkerGrammar, ORIGINAL_GRAMMAR
from booklingua.notifications.base import EmailMessage


@dataclass
class DownloadLink:
    language: str   # nombre legible, ej. "Spanish"
    url:      str


_CUSTOMER_TEMPLATE = """\
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #7c3aed;">Your translations are ready! 📚</h1>

  <p>Hi {author_name},</p>

  <p>Great news! Your translations for <strong>{book_title}</strong> are complete and ready for download.</p>

  <div style="background: #f5f3ff; padding: 20px; border-radius: 12px; margin: 20px 0;">
    <h3 style="margin-top: 0;">Download Your Translations</h3>
{links}
  </div>

  <div style="background: #fef3c7; padding: 15px; border-radius: 8px; margin: 20px 0;">
    <p style="margin: 0; color: #92400e;">
      {review_help}
    </p>
  </div>

  <p>Download links expire in 7 days. Need them resent? Just reply to this email.</p>

  <p>Happy publishing!<br>The BookLingua Team</p>
</div>"""

_LINK_TEMPLATE = """\
    <p style="margin: 10px 0;">
      <strong>{language}:</strong>
      <a href="{url}" style="color: #7c3aed; text-decoration: none;"> Download File →</a>
    </p>"""

# La explicación depende de qué envuelve el marcador
_REVIEW_HELP = {
    "original": (
        "<strong>📝 How to review your translations:</strong><br><br>\n"
        "      Text highlighted in yellow shows the <em>original</em> translation before our editorial improvements.\n"
        "      The clean text that follows is the improved version ready for publishing.<br><br>\n"
        "      Simply delete the yellow highlighted portions to get your final, polished translation."
    ),
    "replacement": (
        "<strong>📝 Review your changes:</strong> Editorial improvements are highlighted in yellow "
        "in your documents. Review each change to ensure it matches your vision."
    ),
}

_ADMIN_TEMPLATE = """\
<h2>Translation Completed!</h2>
<p><strong>Order ID:</strong> {order_id}</p>
<p><strong>Customer:</strong> {author_name} ({email})</p>
<p><strong>Book:</strong> {book_title}</p>
<p><strong>Languages:</strong> {languages}</p>
<p><strong>Status:</strong> ✅ Completed and delivered</p>"""


def download_url(app_url: str, order_id: int, language: str) -> str:
    return f"{app_url.rstrip('/')}/download/{order_id}/{language}"


def build_completion_email(
    from_address: str,
    to:           str,
    author_name:  str,
    book_title:   str,
    links:        list[DownloadLink],
    grammar:      MarkerGrammar = ORIGINAL_GRAMMAR,
) -> EmailMessage:
    """Email al cliente: un enlace por idioma + cómo leer los resaltados."""
    rendered_links = "\n".join(
        _LINK_TEMPLATE.format(language=escape(link.language), url=escape(link.url, quote=True))
        for link in links
    )
    html = _CUSTOMER_TEMPLATE.format(
        author_name = escape(author_name),
        book_title  = escape(book_title),
        links       = rendered_links,
        review_help = _REVIEW_HELP[grammar.wraps],
    )
    return EmailMessage(
        from_address = from_address,
        to           = to,
        subject      = f"Your translations are ready: {book_title} 🎉",
        html         = html,
    )


def build_admin_email(
    from_address: str,
    to:           str,
    order_id:     int,
    author_name:  str,
    email:        str,
    book_title:   str,
    languages:    list[str],
) -> EmailMessage:
    """Resumen para el operador. languages ya viene con nombres legibles."""
    html = _ADMIN_TEMPLATE.format(
        order_id    = order_id,
        author_name = escape(author_name),
        email       = escape(email),
        book_title  = escape(book_title),
        languages   = escape(", ".join(languages)),
    )
    return EmailMessage(
        from_address = from_address,
        to           = to,
        subject      = f"✅ Translation Complete: {book_title}",
        html         = html,
    )
