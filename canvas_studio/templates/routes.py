# API routes for generation templates

from flask import Blueprint, request, jsonify

from canvas_inference.errors import GenerationError, StorageError

from ..errors import error_response
from ..library.serializers import template_to_dict

# JSON body key -> TemplateService field
_BODY_FIELDS = {
    'name': 'name',
    'description': 'description',
    'defaultModel': 'default_model',
    'params': 'params',
}


def create_templates_blueprint(studio):
    """Create the Flask blueprint for per-user templates"""
    bp = Blueprint('templates', __name__)
    templates = studio.templates

    def _user_or_error():
        user_id = request.headers.get('X-User-Id', '').strip()
        if not user_id:
            return None, (jsonify({'error': 'Authentication required'}), 401)
        return user_id, None

    def _run(coro):
        try:
            return studio.runner.run(coro), None
        except (GenerationError, StorageError) as e:
            return None, error_response(e)

    @bp.route('/api/templates', methods=['GET'])
    def list_templates():
        """Templates of the current user; the built-ins are seeded on first call"""
        user_id, error = _user_or_error()
        if error:
            return error
        found, error = _run(templates.fetch_templates(user_id))
        if error:
            return error
        return jsonify([template_to_dict(t) for t in found])

    @bp.route('/api/templates', methods=['POST'])
    def add_template():
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        template, error = _run(templates.add_template(
            user_id,
            data.get('name', ''),
            data.get('defaultModel', ''),
            params=data.get('params') or {},
            description=data.get('description') or '',
        ))
        if error:
            return error
        return jsonify(template_to_dict(template)), 201

    @bp.route('/api/templates/<template_id>', methods=['PATCH'])
    def update_template(template_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        unknown = sorted(set(data) - set(_BODY_FIELDS))
        if unknown:
            return jsonify({'error': f"Cannot update template field(s): {', '.join(unknown)}"}), 400
        changes = {_BODY_FIELDS[key]: value for key, value in data.items()}
        template, error = _run(templates.update_template(template_id, user_id, **changes))
        if error:
            return error
        return jsonify(template_to_dict(template))

    @bp.route('/api/templates/<template_id>', methods=['DELETE'])
    def delete_template(template_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        _, error = _run(templates.delete_template(template_id, user_id))
        if error:
            return error
        return jsonify({'deleted': template_id})

    @bp.route('/api/templates/<template_id>/duplicate', methods=['POST'])
    def duplicate_template(template_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        template, error = _run(templates.duplicate_template(template_id, user_id))
        if error:
            return error
        return jsonify(template_to_dict(template)), 201

    @bp.route('/api/templates/<template_id>/request', methods=['GET'])
    def template_request(template_id: str):
        """Generation request pre-filled from the template, and its default model"""
        user_id, error = _user_or_error()
        if error:
            return error
        result, error = _run(templates.build_request(template_id, user_id, request.args.get('prompt')))
        if error:
            return error
        gen_request, model_id = result
        return jsonify({'request': gen_request.to_params(), 'modelId': model_id})

    return bp
