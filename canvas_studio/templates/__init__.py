# Generation templates module

from .routes import create_templates_blueprint
from .service import DEFAULT_TEMPLATES, TemplateService

__all__ = [
    'DEFAULT_TEMPLATES',
    'TemplateService',
    'create_templates_blueprint',
]
