"""Renderer constants."""

from __future__ import annotations

VIEWPORT = {"width": 1920, "height": 1080}

# Fingerprinting/bot-challenge services that stall networkidle on clone kits
ANTIBOT_DOMAINS = {
    "ipdata.co",
    "ipinfo.io",
    "ipapi.co",
    "ip-api.com",
    "ipify.org",
    "fingerprint.com",
    "fpjs.io",
    "arkoselabs.com",
    "datadome.co",
    "perimeterx.net",
    "hcaptcha.com",
    "challenges.cloudflare.com",
    "kasada.io",
}

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
]

# Hide the most common headless signals so cloaking kits serve the real page.
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', {
    get: () => [{ name: 'Chrome PDF Viewer', filename: 'internal-pdf-viewer' }]
});
window.chrome = window.chrome || { runtime: {} };
"""

VISIBLE_TEXT_SCRIPT = "() => (document.body && document.body.innerText) || ''"
