from flask import jsonify

from ..errors import PipelineError


def register_api(app):
    from .exports import bp as exports_bp
    from .recordings import bp as recordings_bp
    from .tusd_hooks import bp as tusd_bp
    from .uploads import bp as uploads_bp

    app.register_blueprint(uploads_bp)
    app.register_blueprint(tusd_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(recordings_bp)

    @app.errorhandler(PipelineError)
    def handle_pipeline_error(err):
        app.logger.error('%s: %s %s', err.code, err.message, err.details)
        return jsonify(err.to_dict()), err.status
