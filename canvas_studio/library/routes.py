# API routes for the media library

from flask import Blueprint, request, jsonify

from canvas_inference.errors import GenerationError, MediaDecodeError, StorageError
from canvas_inference.input_processing.media_codec import MediaBlob, MediaCodec

from ..errors import error_response
from .serializers import folder_to_dict, record_to_dict, url_state_to_dict


def create_library_blueprint(studio):
    """Create the Flask blueprint for library content and item operations"""
    bp = Blueprint('library', __name__)
    library = studio.library

    def _user_or_error():
        user_id = request.headers.get('X-User-Id', '').strip()
        if not user_id:
            return None, (jsonify({'error': 'Authentication required'}), 401)
        return user_id, None

    def _auth_context():
        return request.headers.get('Authorization') or request.headers.get('X-User-Id')

    def _run(coro):
        try:
            return studio.runner.run(coro), None
        except (GenerationError, StorageError, MediaDecodeError) as e:
            return None, error_response(e)

    @bp.route('/api/library', methods=['GET'])
    def get_library():
        """Records and folders of the current user, newest first"""
        user_id, error = _user_or_error()
        if error:
            return error
        content, error = _run(library.fetch_library_content(user_id))
        if error:
            return error
        records, folders = content
        return jsonify({
            'records': [record_to_dict(r) for r in records],
            'folders': [folder_to_dict(f) for f in folders],
        })

    @bp.route('/api/library/folders', methods=['POST'])
    def create_folder():
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        folder, error = _run(library.create_folder(data.get('name', ''), user_id))
        if error:
            return error
        return jsonify(folder_to_dict(folder)), 201

    @bp.route('/api/library/upload', methods=['POST'])
    def upload():
        """
        Add a file to the library

        Accepts a multipart ``file`` field or a JSON body with a ``data`` data URL.
        """
        user_id, error = _user_or_error()
        if error:
            return error

        upload_file = request.files.get('file')
        if upload_file is not None:
            payload = upload_file.read()
            mime = upload_file.mimetype
            if not mime or mime == 'application/octet-stream':
                mime = MediaCodec.sniff_mime_type(payload)
            blob = MediaBlob(data=payload, mime_type=mime)
            folder_id = request.form.get('folder_id') or None
        else:
            data = request.get_json(silent=True) or {}
            if not data.get('data'):
                return jsonify({'error': 'Missing file or data'}), 400
            try:
                blob = MediaCodec.decode(data['data'], data.get('mimeType'))
            except MediaDecodeError as e:
                return error_response(e)
            folder_id = data.get('folder_id')

        record, error = _run(library.upload_file(blob, user_id, folder_id=folder_id))
        if error:
            return error
        return jsonify(record_to_dict(record)), 201

    @bp.route('/api/library/records/<record_id>/folder', methods=['PATCH'])
    def move_record(record_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        record, error = _run(library.move_to_folder(record_id, data.get('folder_id'), user_id))
        if error:
            return error
        return jsonify(record_to_dict(record))

    @bp.route('/api/library/records/<record_id>/favorite', methods=['POST'])
    def toggle_favorite(record_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        record, error = _run(library.toggle_star(record_id, user_id))
        if error:
            return error
        return jsonify(record_to_dict(record))

    @bp.route('/api/library/records/<record_id>/duplicate', methods=['POST'])
    def duplicate_record(record_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        record, error = _run(library.duplicate(record_id, user_id))
        if error:
            return error
        return jsonify(record_to_dict(record)), 201

    @bp.route('/api/library/records', methods=['DELETE'])
    def delete_records():
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        ids = data.get('ids') or []
        if not isinstance(ids, list):
            return jsonify({'error': 'ids must be a list'}), 400
        deleted, error = _run(library.delete_records(ids, user_id))
        if error:
            return error
        return jsonify({'deleted': deleted})

    @bp.route('/api/library/records/<record_id>/url', methods=['GET'])
    def record_url(record_id: str):
        """Signed URL state; a missing object reports ``not_found`` instead of failing"""
        user_id, error = _user_or_error()
        if error:
            return error
        state, error = _run(library.get_signed_url(record_id, user_id, _auth_context()))
        if error:
            return error
        return jsonify(url_state_to_dict(record_id, state))

    @bp.route('/api/library/records/<record_id>/edit', methods=['POST'])
    def edit_record(record_id: str):
        """Apply ``instruction`` to a stored image; the edit is saved as a new record"""
        user_id, error = _user_or_error()
        if error:
            return error
        data = request.get_json(silent=True) or {}
        record, error = _run(library.edit_record(record_id, data.get('instruction', ''), user_id))
        if error:
            return error
        return jsonify(record_to_dict(record)), 201

    @bp.route('/api/library/records/<record_id>/remix', methods=['GET'])
    def remix_request(record_id: str):
        user_id, error = _user_or_error()
        if error:
            return error
        result, error = _run(library.build_remix_request(record_id, user_id, request.args.get('prompt')))
        if error:
            return error
        remix, provider_id = result
        return jsonify({'request': remix.to_params(), 'modelId': provider_id})

    return bp
