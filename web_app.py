#!/usr/bin/env python3
"""
Flask control panel for the news relay.
Runtime inspection and tuning: endpoint toggles and weights, similarity
settings, reddit feeds, banned keywords, polling interval, manual fetches.
"""

import logging
from typing import Any, Optional, Tuple

from flask import Flask, jsonify, request

from cors_config import configure_cors
from newsrelay.bot import NewsBot

logger = logging.getLogger(__name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _parse_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fail(message: str, status: int = 400) -> Tuple[Any, int]:
    return jsonify({'success': False, 'message': message, 'error': message}), status


def create_app(bot: NewsBot) -> Flask:
    """Build the control panel around a running bot."""
    app = Flask(__name__)
    app.config['JSON_SORT_KEYS'] = False
    configure_cors(app)

    def endpoint_or_404(name: str):
        adapter = bot.get_endpoint(name)
        if adapter is None:
            return None, _fail(f"Unknown endpoint: {name}", 404)
        return adapter, None

    @app.route('/api/health')
    def health_check():
        """API health check endpoint"""
        return jsonify({'status': 'healthy', 'running': bot.is_running})

    @app.route('/api/status')
    def status():
        return jsonify({'success': True, **bot.status()})

    @app.route('/api/activity')
    def activity():
        try:
            limit = max(1, min(int(request.args.get('limit', 50)), 200))
        except ValueError:
            return _fail("limit must be an integer")
        return jsonify({'success': True, 'events': bot.recent_activity(limit)})

    # -- endpoints ------------------------------------------------------

    @app.route('/api/endpoints/<name>/<action>', methods=['POST'])
    def toggle_endpoint(name, action):
        adapter, error = endpoint_or_404(name)
        if error:
            return error
        if action not in ('enable', 'disable'):
            return _fail(f"Unknown action: {action}", 404)
        enabled = action == 'enable'
        if enabled and not adapter.initialized:
            if not adapter.initialize():
                return _fail(f"Endpoint {name} is missing credentials")
        if not adapter.set_enabled(enabled):
            return _fail(f"Endpoint {name} is missing credentials")
        return jsonify({'success': True, 'message': f"Endpoint {name} {action}d", 'enabled': adapter.enabled})

    @app.route('/api/endpoints/<name>/weight', methods=['POST'])
    def set_weight(name):
        adapter, error = endpoint_or_404(name)
        if error:
            return error
        weight = _parse_float(_json_body().get('weight'))
        if weight is None or weight < 0:
            return _fail("weight must be a number >= 0")
        adapter.set_weight(weight)
        return jsonify({'success': True, 'message': f"Weight for {name} set to {weight}", 'weight': weight})

    @app.route('/api/endpoints/<name>/similarity-threshold', methods=['POST'])
    def set_similarity_threshold(name):
        adapter, error = endpoint_or_404(name)
        if error:
            return error
        threshold = _parse_float(_json_body().get('threshold'))
        if threshold is None or not 0.0 <= threshold <= 1.0:
            return _fail("threshold must be a number between 0 and 1")
        applied = adapter.update_similarity_threshold(threshold)
        return jsonify({'success': True, 'message': f"Similarity threshold for {name} set to {applied}", 'threshold': applied})

    @app.route('/api/endpoints/<name>/vector-embedding/<action>', methods=['POST'])
    def vector_embedding(name, action):
        adapter, error = endpoint_or_404(name)
        if error:
            return error
        if action == 'enable':
            if not adapter.enable_similarity():
                return _fail("Embedding provider unavailable; set VOYAGE_API_KEY or OPENAI_API_KEY")
            message = f"Vector embedding enabled for {name}"
        elif action == 'disable':
            adapter.disable_similarity()
            message = f"Vector embedding disabled for {name}"
        elif action == 'clear':
            if not adapter.clear_similarity():
                return _fail(f"Vector embedding is not active for {name}")
            message = f"Similarity history cleared for {name}"
        else:
            return _fail(f"Unknown action: {action}", 404)
        return jsonify({'success': True, 'message': message, 'stats': adapter.stats()})

    # -- reddit feeds -----------------------------------------------------

    @app.route('/api/reddit/sources', methods=['GET', 'POST', 'DELETE'])
    def reddit_sources():
        reddit = bot.reddit
        if reddit is None or reddit.data_store is None:
            return _fail("Reddit endpoint is not initialized", 404)
        if request.method == 'GET':
            return jsonify({'success': True, 'sources': reddit.list_feeds()})

        data = _json_body()
        json_url = (data.get('jsonUrl') or data.get('json_url') or '').strip()
        if not json_url:
            return _fail("jsonUrl is required")
        if request.method == 'POST':
            try:
                reddit.add_feed(data.get('author') or 'any', json_url)
            except ValueError as e:
                return _fail(str(e))
            return jsonify({'success': True, 'message': f"Added reddit source {json_url}", 'sources': reddit.list_feeds()})

        if not reddit.remove_feed(json_url):
            return _fail(f"Reddit source not found: {json_url}", 404)
        return jsonify({'success': True, 'message': f"Removed reddit source {json_url}", 'sources': reddit.list_feeds()})

    # -- banned keywords --------------------------------------------------

    @app.route('/api/banned-keywords', methods=['GET', 'POST', 'DELETE'])
    def banned_keywords():
        if request.method == 'GET':
            return jsonify({'success': True, 'keywords': bot.banned_keywords.keywords})

        keyword = (_json_body().get('keyword') or '').strip()
        if not keyword:
            return _fail("keyword is required")
        if request.method == 'POST':
            added = bot.add_banned_keyword(keyword)
            message = f"Banned keyword added: {keyword}" if added else f"Keyword already banned: {keyword}"
            return jsonify({'success': True, 'message': message, 'added': added, 'keywords': bot.banned_keywords.keywords})

        if not bot.remove_banned_keyword(keyword):
            return _fail(f"Keyword not found: {keyword}", 404)
        return jsonify({'success': True, 'message': f"Banned keyword removed: {keyword}", 'keywords': bot.banned_keywords.keywords})

    # -- scheduling -------------------------------------------------------

    @app.route('/api/interval', methods=['POST'])
    def set_interval():
        data = _json_body()
        base = _parse_float(data.get('baseMinutes', data.get('minutes')))
        maximum = _parse_float(data.get('maxMinutes')) if data.get('maxMinutes') is not None else None
        if base is None and maximum is None:
            return _fail("baseMinutes or maxMinutes is required")
        try:
            intervals = bot.set_interval(base, maximum)
        except ValueError as e:
            return _fail(str(e))
        return jsonify({'success': True, 'message': "Polling interval updated", 'interval': intervals})

    @app.route('/api/fetch', methods=['POST'])
    @app.route('/api/fetch/<name>', methods=['POST'])
    def manual_fetch(name=None):
        if name is not None and bot.get_endpoint(name) is None:
            return _fail(f"Unknown endpoint: {name}", 404)
        result = bot.manual_fetch(name)
        return jsonify(result.to_dict())

    @app.route('/api/commands/<name>', methods=['POST'])
    def run_command(name):
        if name.lower() not in bot.commands.names:
            return _fail(f"Unknown command: {name}", 404)
        result = bot.handle_command(name, channel_id=_json_body().get('channelId'))
        return jsonify(result.to_dict())

    @app.errorhandler(404)
    def not_found(error):
        """Custom 404 handler"""
        return jsonify({'success': False, 'error': 'Endpoint not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Custom 500 handler"""
        logger.error(f"Internal server error: {error}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    return app
