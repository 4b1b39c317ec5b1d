"""
Wilayah Review API - Flask application
Main application entry point
"""
import sys
import os
import time
from pathlib import Path
from dotenv import load_dotenv

# Determine project root (2 levels up from this file)
API_DIR = Path(__file__).parent.resolve()
PROJECT_ROOT = API_DIR.parent.parent.resolve()

# Load environment variables from .env file at project root
env_path = PROJECT_ROOT / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Add project root to path for absolute imports
sys.path.insert(0, str(PROJECT_ROOT))

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded
from sqlalchemy import text

from apps.api.config import Config, config_by_name
from apps.api import db, migrate, jwt, limiter
from apps.api.utils.errors import APIError, api_error_response
from apps.api.utils.spatial_resolver import SpatialResolver


def create_app(config_class=Config):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db_url = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    if 'postgresql' in db_url:
        app.logger.info("Database: PostgreSQL")
    elif 'sqlite' in db_url:
        app.logger.info("Database: SQLite (local)")

    config_class.init_app(app)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    SpatialResolver(app)

    if app.config.get('RATELIMIT_ENABLED', True):
        limiter.init_app(app)
        app.logger.info("Rate limiting enabled")
    else:
        app.logger.warning("Rate limiting is DISABLED - not recommended for production")

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if not app.config.get('DEBUG'):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # NOTE: Cannot use wildcard ("*") with supports_credentials=True
    cors_origins = list(app.config.get('CORS_ORIGINS') or [])
    extra_origins = (os.getenv('CORS_ALLOWED_ORIGINS') or '').split(',')
    cors_origins.extend(o.strip() for o in extra_origins if o.strip())
    cors_origins = list(dict.fromkeys(o for o in cors_origins if o))

    is_production = app.config.get('FLASK_ENV') == 'production' and not app.config.get('DEBUG')
    if is_production and not cors_origins:
        raise RuntimeError("CORS configuration error: set CORS_ORIGINS or CORS_ALLOWED_ORIGINS in production.")

    CORS(app,
         origins=cors_origins,
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         supports_credentials=True,
         expose_headers=["Content-Type", "Authorization"])

    # Register blueprints
    from apps.api.routes import locations_bp, reviews_bp, exports_bp

    app.register_blueprint(locations_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(exports_bp)

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint for monitoring"""
        return jsonify({
            'status': 'ok',
            'service': app.config.get('APP_NAME', 'Wilayah Review API'),
            'version': '1.0.0'
        }), 200

    @app.route('/health/db', methods=['GET'])
    def db_health_check():
        """Health check endpoint that tests database connectivity"""
        start = time.time()
        try:
            db.session.execute(text('SELECT 1')).fetchone()
            db.session.rollback()
            elapsed = time.time() - start
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'latency_ms': round(elapsed * 1000, 2),
            }), 200
        except Exception as e:
            elapsed = time.time() - start
            app.logger.error(f"Database health check failed: {e}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'latency_ms': round(elapsed * 1000, 2),
            }), 503

    # Error handlers
    @app.errorhandler(APIError)
    def handle_api_error(error):
        return api_error_response(error)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found', 'code': 'NOT_FOUND'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Unauthorized'}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': 'Forbidden', 'code': 'AUTHORIZATION_ERROR'}), 403

    @app.errorhandler(RateLimitExceeded)
    def ratelimit_handler(error):
        resp = jsonify({'error': 'Rate limit exceeded', 'code': 'RATE_LIMITED'})
        resp.status_code = 429
        return resp

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Unauthorized', 'code': 'AUTHENTICATION_REQUIRED'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid token', 'code': 'AUTHENTICATION_REQUIRED'}), 401

    return app


if __name__ == '__main__':
    app = create_app(config_by_name.get(os.getenv('FLASK_ENV', 'default'), config_by_name['default']))
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config['DEBUG']
    )
