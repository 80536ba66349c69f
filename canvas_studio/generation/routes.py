# API routes for generation

from flask import Blueprint, request, jsonify

from canvas_inference.errors import GenerationError
from canvas_inference.generation.types import MediaKind

from ..errors import error_response
from .orchestrator import AggregateStatus
from .serializers import aggregate_result_to_dict, parse_generate_body, state_to_dict
from .state import Action


def create_generation_blueprint(studio):
    """Create the Flask blueprint for provider listing and generation rounds"""
    bp = Blueprint('generation', __name__)

    def _user_id():
        return request.headers.get('X-User-Id', '').strip() or None

    def _user_store():
        user_id = _user_id()
        if not user_id:
            return None, (jsonify({'error': 'Authentication required'}), 401)
        return studio.stores.for_user(user_id), None

    @bp.route('/api/providers', methods=['GET'])
    def list_providers():
        """
        List registered providers

        Optional ``type`` query parameter filters by media kind.
        """
        kind = request.args.get('type')
        if kind:
            try:
                providers = studio.registry.providers_for_kind(MediaKind(kind))
            except ValueError:
                return jsonify({'error': f'Unknown media kind: {kind}'}), 400
            return jsonify([p.get_info() for p in providers])
        return jsonify(studio.registry.get_all_providers_info())

    @bp.route('/api/generate', methods=['POST'])
    def generate():
        """
        Run one generation round

        Body: request fields (camelCase) plus ``mode`` (``single`` |
        ``compare``), ``modelId`` for single mode and ``mediaKind`` for
        compare mode. The user comes from the ``X-User-Id`` header and the
        round is tracked in that user's state only.
        """
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Invalid JSON body'}), 400

        user_id = _user_id()
        store = studio.stores.for_user(user_id) if user_id else None
        try:
            gen_request, mode = parse_generate_body(data)
            result = studio.runner.run(
                studio.orchestrator.run(gen_request, mode, user_id=user_id, store=store)
            )
        except GenerationError as e:
            return error_response(e)

        media_kind = mode.media_kind or (result.records[0].media_kind if result.records else None)
        body = aggregate_result_to_dict(result, media_kind)
        if result.status is AggregateStatus.TOTAL_FAILURE:
            body['error'] = body['message']
            return jsonify(body), 502
        return jsonify(body), 200

    @bp.route('/api/generate/cancel', methods=['POST'])
    def cancel_generation():
        """Cancel the caller's running round; other users' rounds are untouched"""
        store, error = _user_store()
        if error:
            return error
        cancelled = store.cancel()
        return jsonify({'cancelled': cancelled, 'state': state_to_dict(store.state)})

    @bp.route('/api/generate/status', methods=['GET'])
    def generation_status():
        store, error = _user_store()
        if error:
            return error
        return jsonify(state_to_dict(store.state))

    @bp.route('/api/generate/clear', methods=['POST'])
    def clear_results():
        store, error = _user_store()
        if error:
            return error
        return jsonify(state_to_dict(store.dispatch(Action.clear())))

    return bp
