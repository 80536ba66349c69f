# Template service - saved prompts and generation parameters per user

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from canvas_inference.errors import NotFoundError, StorageError, ValidationError
from canvas_inference.generation.registry import ProviderRegistry
from canvas_inference.generation.types import GenerationRequest

from ..library.models import Template, utcnow
from ..library.storage import MediaPersistence

logger = logging.getLogger(__name__)

# Seeded ids are derived from the user and the slug, so a second seeding
# attempt collides instead of duplicating the built-ins.
SEED_NAMESPACE = uuid.UUID("6f1c9a52-3d4e-4b8f-9a61-2c7d5e8f0b13")

DEFAULT_TEMPLATES: Tuple[Dict[str, Any], ...] = (
    {
        'slug': 'social-media-ad',
        'name': 'Social Media Ad',
        'description': 'Punchy prompt for high engagement.',
        'default_model': 'gemini-3-pro-image-preview',
        'params': {
            'prompt': 'Vibrant, eye-catching advertisement for a new brand of sparkling water. Tropical fruits, '
                      'splashing water, energetic models, dynamic composition, high detail, 8k.',
            'aspectRatio': '1:1',
            'resolution': '1K',
        },
    },
    {
        'slug': 'stock-photo',
        'name': 'Stock Photo',
        'description': 'Natural lighting for realistic scenes.',
        'default_model': 'gemini-3-pro-image-preview',
        'params': {
            'prompt': 'A diverse group of colleagues collaborating in a bright, modern office space. Natural light '
                      'from large windows, plants in the background, candid expressions. Photorealistic, soft focus.',
            'aspectRatio': '3:2',
            'resolution': '2K',
        },
    },
    {
        'slug': 'website-graphic',
        'name': 'Website Graphic',
        'description': 'Minimal, clean graphics for web use.',
        'default_model': 'openai-latest-image',
        'params': {
            'prompt': 'Minimalist abstract background, gentle gradients of blue and purple, subtle geometric shapes, '
                      'clean vector style, suitable for a tech startup website hero section.',
            'aspectRatio': '16:9',
            'resolution': '1024',
        },
    },
    {
        'slug': 'product-shot',
        'name': 'Product Shot',
        'description': 'Studio lighting for commercial products.',
        'default_model': 'gemini-3-pro-image-preview',
        'params': {
            'prompt': 'A sleek, modern wireless earbud case on a marble surface. Studio lighting, soft shadows, '
                      'focused on product texture and detail, minimalist background, commercial photography.',
            'aspectRatio': '1:1',
            'resolution': '1K',
        },
    },
    {
        'slug': 'youtube-thumbnail',
        'name': 'YouTube Thumbnail',
        'description': 'Bold subject, high contrast for clicks.',
        'default_model': 'gemini-3-pro-image-preview',
        'params': {
            'prompt': 'Expressive portrait of a gamer reacting with shock and excitement. Neon lighting, high '
                      'contrast, dramatic shadows, bokeh background with computer screens. Bold colors, designed '
                      'for a clickable YouTube thumbnail.',
            'aspectRatio': '16:9',
            'resolution': '2K',
        },
    },
)

_EDITABLE_FIELDS = ('name', 'description', 'default_model', 'params')


def _request_from_params(params: Dict[str, Any], prompt: Optional[str] = None) -> GenerationRequest:
    fields = dict(params)
    if prompt is not None:
        fields['prompt'] = prompt
    fields.setdefault('prompt', '')
    try:
        return GenerationRequest.model_validate(fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid template parameter {location}: {first.get('msg')}") from e


class TemplateService:
    """
    Per-user generation templates

    A user who has no templates yet gets the built-in set on first fetch;
    those copies are read-only but can be duplicated into editable ones.
    """

    def __init__(self, persistence: MediaPersistence, registry: Optional[ProviderRegistry] = None):
        self.persistence = persistence
        self.registry = registry

    async def fetch_templates(self, user_id: str) -> List[Template]:
        """Templates of a user, newest first; seeds the built-ins when there are none"""
        templates = await self.persistence.list_templates(user_id)
        if templates:
            return templates
        return await self._seed_defaults(user_id)

    async def _seed_defaults(self, user_id: str) -> List[Template]:
        now = utcnow()
        try:
            for index, default in enumerate(DEFAULT_TEMPLATES):
                await self.persistence.create_template(Template(
                    id=str(uuid.uuid5(SEED_NAMESPACE, f"{user_id}/{default['slug']}")),
                    user_id=user_id,
                    name=default['name'],
                    description=default['description'],
                    default_model=default['default_model'],
                    params=dict(default['params']),
                    readonly=True,
                    # Newest first must still list the built-ins in their declared order
                    created_at=now - timedelta(milliseconds=index),
                ))
        except StorageError as e:
            logger.info("Default templates for %s were seeded concurrently: %s", user_id, e)
        else:
            logger.info("Seeded %d default template(s) for user %s", len(DEFAULT_TEMPLATES), user_id)
        return await self.persistence.list_templates(user_id)

    async def _get_owned(self, template_id: str, user_id: str) -> Template:
        template = await self.persistence.get_template(template_id)
        if template is None or template.user_id != user_id:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def _check_model(self, model_id: str) -> None:
        if not model_id:
            raise ValidationError('Template needs a default model')
        if self.registry is not None and self.registry.get_provider(model_id) is None:
            raise ValidationError(f"Unknown model '{model_id}'.")

    def _check_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if 'name' in fields:
            fields['name'] = (fields['name'] or '').strip()
            if not fields['name']:
                raise ValidationError('Template name is required')
        if 'default_model' in fields:
            self._check_model(fields['default_model'])
        if 'params' in fields:
            if not isinstance(fields['params'], dict):
                raise ValidationError('Template params must be an object')
            _request_from_params(fields['params'])
        if 'description' in fields:
            fields['description'] = fields['description'] or ''
        return fields

    async def add_template(
        self,
        user_id: str,
        name: str,
        default_model: str,
        params: Optional[Dict[str, Any]] = None,
        description: str = '',
    ) -> Template:
        fields = self._check_fields({
            'name': name,
            'default_model': default_model,
            'params': params if params is not None else {},
            'description': description,
        })
        return await self.persistence.create_template(Template(user_id=user_id, **fields))

    async def update_template(self, template_id: str, user_id: str, **changes: Any) -> Template:
        """
        Change name, description, default model or params

        Raises:
            ValidationError: unknown field, bad value, or a read-only template.
        """
        template = await self._get_owned(template_id, user_id)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update template field(s): {', '.join(sorted(unknown))}")
        if template.readonly:
            raise ValidationError('Default templates are read-only; duplicate it to make changes.')
        if not changes:
            return template
        return await self.persistence.update_template(template_id, **self._check_fields(dict(changes)))

    async def delete_template(self, template_id: str, user_id: str) -> None:
        await self._get_owned(template_id, user_id)
        await self.persistence.delete_template(template_id)

    async def duplicate_template(self, template_id: str, user_id: str) -> Template:
        """Editable copy named ``<name> (Copy)``"""
        original = await self._get_owned(template_id, user_id)
        return await self.persistence.create_template(Template(
            user_id=user_id,
            name=f'{original.name} (Copy)',
            description=original.description,
            default_model=original.default_model,
            params=dict(original.params),
        ))

    async def build_request(
        self,
        template_id: str,
        user_id: str,
        prompt: Optional[str] = None,
    ) -> Tuple[GenerationRequest, str]:
        """Request pre-filled from a template, plus the model it targets"""
        template = await self._get_owned(template_id, user_id)
        return _request_from_params(template.params, prompt), template.default_model
