"""HTML templates for the consent screen and direct-connect confirmation.

Every interpolated value passes through html.escape; client URLs are
also restricted to http/https before being rendered as links.

Theme colors:
- Background: #FAF9F7 (warm cream)
- Primary: #D97756 (terracotta)
- Primary hover: #C4684A
- Text: #1A1915 (dark charcoal)
- Secondary text: #6B6860
- Border: #E5E4E0, #D9D8D4
"""

import html
from urllib.parse import urlparse

_BASE_STYLE = """
        body {{ font-family: 'Söhne', -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               background: #FAF9F7;
               min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0; }}
        .container {{ background: white; padding: 40px; border-radius: 16px; box-shadow: 0 4px 24px rgba(0,0,0,0.08);
                     width: 100%; max-width: 450px; border: 1px solid #E5E4E0; }}
        h1 {{ margin: 0 0 8px; color: #1A1915; font-size: 24px; font-weight: 600; }}
        p {{ color: #6B6860; margin: 0 0 24px; }}
        .scope {{ display: flex; align-items: center; gap: 10px; padding: 12px; background: #F5F5F0;
                 border-radius: 8px; margin-bottom: 10px; }}
        .scope-icon {{ color: #D97756; font-weight: bold; }}
"""

CONSENT_PAGE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Authorize - {server_name}</title>
    <style>""" + _BASE_STYLE + """
        .app-info {{ display: flex; align-items: center; gap: 15px; padding: 20px; background: #F5F5F0;
                    border-radius: 8px; margin: 20px 0; }}
        .app-icon {{ width: 50px; height: 50px; background: #D97756; border-radius: 10px;
                    display: flex; align-items: center; justify-content: center; color: white; font-size: 24px; font-weight: 600; }}
        .app-name {{ font-weight: 600; color: #1A1915; }}
        .app-name a {{ color: #D97756; text-decoration: none; }}
        .scopes {{ margin: 20px 0; }}
        .buttons {{ display: flex; gap: 12px; }}
        button {{ flex: 1; padding: 14px; border-radius: 8px; font-size: 15px; font-weight: 600; cursor: pointer; transition: all 0.2s; }}
        .allow {{ background: #D97756; color: white; border: none; }}
        .deny {{ background: white; color: #6B6860; border: 1px solid #D9D8D4; }}
        .allow:hover {{ background: #C4684A; }}
        .deny:hover {{ background: #F5F5F0; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Authorize Access</h1>
        <p>{description}</p>
        <div class="app-info">
            <div class="app-icon">M</div>
            <div>
                <div class="app-name">{client_name}</div>
                <div style="color: #6B6860; font-size: 14px;">wants to access your account</div>
            </div>
        </div>
        <div class="scopes">
{integrations}
        </div>
        <form method="POST" action="/authorize">
            <input type="hidden" name="state" value="{state}">
            <input type="hidden" name="csrf_token" value="{csrf_token}">
            <div class="buttons">
                <button type="button" class="deny" onclick="window.history.back()">Cancel</button>
                <button type="submit" class="allow">Approve</button>
            </div>
        </form>
    </div>
</body>
</html>
"""

CONNECTED_PAGE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Connected - {provider_name}</title>
    <style>""" + _BASE_STYLE + """
    </style>
</head>
<body>
    <div class="container">
        <h1>{provider_name} connected</h1>
        <p>You can close this window and retry your request.</p>
        <div class="scopes">
{integrations}
        </div>
    </div>
</body>
</html>
"""

_SCOPE_ROW = """            <div class="scope">
                <span class="scope-icon">✓</span>
                <span>{label}</span>
            </div>"""


def sanitize_url(url: str) -> str:
    """Return url if it is an http(s) URL without control characters, else ''."""
    url = (url or "").strip()
    if not url or any(ord(ch) < 0x20 or 0x7F <= ord(ch) <= 0x9F for ch in url):
        return ""
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return ""
    return url


def _rows(labels: list[str]) -> str:
    return "\n".join(_SCOPE_ROW.format(label=html.escape(label)) for label in labels)


def render_consent_page(
    server_name: str,
    description: str,
    client_name: str,
    client_uri: str,
    integrations: list[str],
    state: str,
    csrf_token: str,
) -> str:
    name = html.escape(client_name or "Unknown MCP Client")
    link = sanitize_url(client_uri)
    if link:
        name = f'<a href="{html.escape(link)}" target="_blank" rel="noopener noreferrer">{name}</a>'
    return CONSENT_PAGE.format(
        server_name=html.escape(server_name),
        description=html.escape(description),
        client_name=name,
        integrations=_rows(integrations),
        state=html.escape(state),
        csrf_token=html.escape(csrf_token),
    )


def render_connected_page(provider_name: str, connected: list[str]) -> str:
    return CONNECTED_PAGE.format(
        provider_name=html.escape(provider_name),
        integrations=_rows(connected),
    )
