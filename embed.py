# embed.py
"""
HTML documents served by /embed/{id}.

The embed endpoint is loaded straight into a browser <iframe>, so it always
answers with HTML: either the player shell wrapping the resolved iframe URL or
a styled error page.
"""
from html import escape
from string import Template

from config import settings
from errors import (
    AggregateSourceError,
    NotFoundError,
    UpstreamConnectionError,
    UpstreamTimeoutError,
)

# Runs in the outer embed page only; cross-origin player content is untouched
AD_BLOCK_SCRIPT = """
        (function() {
            'use strict';

            // Aggressive popup blocking
            const originalWindowOpen = window.open;
            window.open = function() {
                console.log('[AdBlock] Blocked popup window');
                return null;
            };

            // Block all new window/tab attempts
            window.addEventListener('click', function(e) {
                if (e.target.tagName === 'A' && e.target.target === '_blank') {
                    e.preventDefault();
                    e.stopPropagation();
                    console.log('[AdBlock] Blocked new tab');
                    return false;
                }
            }, true);

            // Block popunders
            window.addEventListener('blur', function(e) {
                if (document.activeElement && document.activeElement.tagName === 'IFRAME') {
                    e.stopImmediatePropagation();
                }
            }, true);

            // Block beforeunload popups
            window.addEventListener('beforeunload', function(e) {
                e.preventDefault();
                e.stopPropagation();
                return undefined;
            }, true);

            // Block common ad scripts
            const blockList = ['doubleclick', 'googlesyndication', 'googleadservices', 'adservice', 'advertising', 'adserver', '/ads/', 'popunder', 'popup', 'pop-up'];

            // Override document.write
            const originalDocWrite = document.write;
            document.write = function(content) {
                if (blockList.some(pattern => content.toLowerCase().includes(pattern.toLowerCase()))) return;
                return originalDocWrite.apply(document, arguments);
            };

            // Block createElement
            const originalCreateElement = document.createElement;
            document.createElement = function(tagName) {
                const element = originalCreateElement.call(document, tagName);
                if (tagName.toLowerCase() === 'script' || tagName.toLowerCase() === 'iframe') {
                    const originalSetAttribute = element.setAttribute;
                    element.setAttribute = function(name, value) {
                        if (name === 'src' && blockList.some(pattern => value.toLowerCase().includes(pattern.toLowerCase()))) return;
                        return originalSetAttribute.apply(element, arguments);
                    };
                }
                return element;
            };

            // Remove ads
            function removeAds() {
                const adSelectors = ['[class*="ad-"]', '[id*="ad-"]', '[class*="ads"]', '[id*="ads"]', '[class*="banner"]', '[class*="popup"]', '[class*="overlay"]:not([class*="player"])', 'iframe[src*="doubleclick"]', 'iframe[src*="googlesyndication"]', 'iframe[src*="advertising"]'];
                adSelectors.forEach(selector => {
                    try {
                        document.querySelectorAll(selector).forEach(el => {
                            if (!el.closest('.player') && !el.closest('.player-container') && !el.closest('[class*="player"]')) el.remove();
                        });
                    } catch (e) {}
                });
            }

            document.addEventListener('DOMContentLoaded', removeAds);
            setInterval(removeAds, 1000);

            // Block right-click on ads
            document.addEventListener('contextmenu', function(e) {
                if (e.target.tagName === 'IFRAME' && e.target.src && blockList.some(pattern => e.target.src.toLowerCase().includes(pattern))) {
                    e.preventDefault();
                    return false;
                }
            }, true);

            console.log('[Embed] Ad-blocking initialized');
        })();
"""

PLAYER_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <meta http-equiv="Content-Security-Policy" content="upgrade-insecure-requests">
        <title>$title</title>
        <style>
            body, html { margin: 0; padding: 0; width: 100%; height: 100%; background-color: #000; overflow: hidden; }
            iframe { width: 100%; height: 100%; border: none; position: absolute; top: 0; left: 0; z-index: 1; }
            #loader {
                position: fixed; top: 0; left: 0; width: 100%; height: 100%;
                background-color: #000; display: flex; justify-content: center; align-items: center;
                z-index: 9999; transition: opacity 0.5s ease;
            }
            .spinner {
                width: 50px; height: 50px; border: 3px solid rgba(255,255,255,0.3);
                border-radius: 50%; border-top-color: #fff; animation: spin 1s ease-in-out infinite;
            }
            @keyframes spin { to { transform: rotate(360deg); } }
        </style>
        <script>$script</script>
    </head>
    <body>
        <div id="loader"><div class="spinner"></div></div>
        <iframe
            src="$src"
            allowfullscreen
            allow="autoplay; encrypted-media; fullscreen; picture-in-picture; accelerometer; gyroscope; clipboard-write"
            onload="document.getElementById('loader').style.opacity='0'; setTimeout(() => document.getElementById('loader').style.display='none', 500);"
        ></iframe>
    </body>
</html>
""")

ERROR_TEMPLATE = Template("""<!DOCTYPE html>
<html>
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>$title</title>
        <style>
            * { margin: 0; padding: 0; box-sizing: border-box; }
            body {
                background: linear-gradient(135deg, #1a1a2e 0%, #16213e 100%);
                color: #fff;
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
                display: flex; align-items: center; justify-content: center;
                height: 100vh; overflow: hidden;
            }
            .error-container { text-align: center; padding: 40px 20px; max-width: 500px; }
            h1 { font-size: 28px; font-weight: 600; margin-bottom: 15px; color: #e94560; }
            p { font-size: 16px; line-height: 1.6; color: #a8b2d1; margin-bottom: 25px; }
            .info-box {
                background: rgba(255, 255, 255, 0.05); border: 1px solid rgba(255, 255, 255, 0.1);
                border-radius: 10px; padding: 20px; margin-top: 20px;
            }
            .info-box p { font-size: 14px; margin-bottom: 0; color: #8892b0; }
            .retry-btn {
                display: inline-block; padding: 12px 30px;
                background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
                color: white; text-decoration: none; border-radius: 25px;
                font-weight: 500; margin-top: 10px;
            }
        </style>
    </head>
    <body>
        <div class="error-container">
            <h1>$title</h1>
            <p>$message</p>
            <div class="info-box">
                <p>If this issue persists, please try again later.</p>
            </div>
            <a href="javascript:location.reload()" class="retry-btn">Retry</a>
        </div>
    </body>
</html>
""")

NOT_FOUND_TITLE = "Video Not Found"
NOT_FOUND_MESSAGE = "The requested video could not be found."
MAINTENANCE_TITLE = "Servers Under Maintenance"
MAINTENANCE_MESSAGE = "The video servers are currently unreachable. Please try again in a few minutes."
GENERIC_TITLE = "Video Not Available"
GENERIC_MESSAGE = "This video is currently not available for streaming."

UPSTREAM_DOWN_ERRORS = (UpstreamTimeoutError, UpstreamConnectionError)


def generate_clean_player(iframe_src: str) -> str:
    """Wrap a resolved player URL in the ad-blocking player shell."""
    if iframe_src.startswith("http://"):
        iframe_src = "https://" + iframe_src[len("http://"):]
    return PLAYER_TEMPLATE.substitute(
        title=escape(settings.PLAYER_NAME),
        script=AD_BLOCK_SCRIPT,
        src=escape(iframe_src, quote=True),
    )


def classify_error(error: Exception):
    if isinstance(error, NotFoundError):
        return NOT_FOUND_TITLE, NOT_FOUND_MESSAGE
    if isinstance(error, UPSTREAM_DOWN_ERRORS):
        return MAINTENANCE_TITLE, MAINTENANCE_MESSAGE
    if isinstance(error, AggregateSourceError) and error.errors:
        if all(isinstance(e, UPSTREAM_DOWN_ERRORS) for e in error.errors):
            return MAINTENANCE_TITLE, MAINTENANCE_MESSAGE
    return GENERIC_TITLE, GENERIC_MESSAGE


def generate_error_page(error: Exception) -> str:
    title, message = classify_error(error)
    return ERROR_TEMPLATE.substitute(title=escape(title), message=escape(message))
