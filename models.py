import base64
import io

from PIL import Image, UnidentifiedImageError

from config import MAX_IMAGE_BYTES

PREVIEW_SIZE = (256, 256)


class MintForm:
    """Page-scoped mint form. Lives in memory only; never persisted."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.name = ''
        self.description = ''
        self.attr_name = ''
        self.attr_value = ''
        self.remove_image()

    def update(self, fields):
        # Field ids match the form inputs on the page
        self.name = fields.get('name', self.name)
        self.description = fields.get('description', self.description)
        self.attr_name = fields.get('attr1Name', self.attr_name)
        self.attr_value = fields.get('attr1Value', self.attr_value)

    def select_image(self, filename, data, content_type=None):
        """Validate and attach an image. Returns an error message, or None."""
        if len(data) > MAX_IMAGE_BYTES:
            return 'File size must be less than 10MB'
        if content_type and not content_type.startswith('image/'):
            return f'Invalid content type: {content_type}'

        try:
            image = Image.open(io.BytesIO(data))
            image.verify()
            # verify() leaves the image unusable, reopen for the preview
            image = Image.open(io.BytesIO(data))
            preview = _build_preview(image)
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            return f'Invalid image data: {str(e)}'

        self.image = data
        self.image_filename = filename or 'image'
        self.image_content_type = content_type or Image.MIME.get(image.format, 'application/octet-stream')
        self.image_preview = preview
        return None

    def remove_image(self):
        self.image = None
        self.image_filename = None
        self.image_content_type = None
        self.image_preview = None

    def is_valid(self):
        return bool(self.name.strip() and self.description.strip() and self.image)

    def attributes(self):
        if self.attr_name and self.attr_value:
            return [{'trait_type': self.attr_name, 'value': self.attr_value}]
        return []

    def to_metadata(self, image_url):
        return {
            'name': self.name,
            'description': self.description,
            'image': image_url,
            'attributes': self.attributes(),
        }


def _build_preview(image):
    image.thumbnail(PREVIEW_SIZE)
    if image.mode not in ('RGB', 'RGBA', 'L', 'LA', 'P'):
        image = image.convert('RGB')
    buf = io.BytesIO()
    image.save(buf, format='PNG')
    return f'data:image/png;base64,{base64.b64encode(buf.getvalue()).decode()}'


class WalletSession:
    """A connected wallet. Destroyed with the page; there is no reconnect."""

    def __init__(self, address, balance, chain_id, provider_name, w3):
        self.address = address
        self.balance = balance
        self.chain_id = chain_id
        self.provider_name = provider_name
        self.w3 = w3

    def __repr__(self):
        return f'<WalletSession {self.provider_name} {self.address}>'
