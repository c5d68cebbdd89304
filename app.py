from flask import Flask, jsonify
import logging
import os
from dataclasses import asdict

from torblock.config import TorBlockConfig
from torblock.errors import ConfigError
from torblock.middleware import TorBlock


logging.basicConfig(
    level=(os.environ.get('LOG_LEVEL') or 'INFO').strip().upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger('torblock.app')

app = Flask(__name__)

# Tests and one-off tooling set DISABLE_BACKGROUND=1 to skip the network refresh.
_disable_background = (os.environ.get('DISABLE_BACKGROUND') or '').strip() == '1'

try:
    torblock = TorBlock(TorBlockConfig.from_env(), start=not _disable_background)
except ConfigError as e:
    logger.error('Invalid torblock configuration: %s', e)
    raise

torblock.init_app(app)


@app.after_request
def _security_headers(resp):
    resp.headers.setdefault('X-Content-Type-Options', 'nosniff')
    resp.headers.setdefault('X-Frame-Options', 'SAMEORIGIN')
    resp.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
    return resp


@app.route('/health', methods=['GET'])
def health():
    return jsonify({"ok": True}), 200


@app.route('/torblock/status', methods=['GET'])
def torblock_status():
    st = torblock.status()
    data = asdict(st)
    data['enabled'] = torblock.config.enabled
    data['mode'] = 'redirect' if torblock.config.redirect_enabled else 'reject'
    return jsonify(data), 200
