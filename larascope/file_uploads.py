"""
File upload metadata from validation rule tokens.

Sizes stay in kilobytes, the unit Laravel's file rules use.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

FILE_RULES = ('file', 'image', 'mimes', 'mimetypes', 'dimensions')

IMAGE_MIME_TYPES = [
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/bmp',
    'image/svg+xml',
    'image/webp',
]

MIME_TYPE_MAPPING = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'bmp': 'image/bmp',
    'svg': 'image/svg+xml',
    'webp': 'image/webp',
    'pdf': 'application/pdf',
    'doc': 'application/msword',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'xls': 'application/vnd.ms-excel',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'ppt': 'application/vnd.ms-powerpoint',
    'pptx': 'application/vnd.openxmlformats-officedocument.presentationml.presentation',
    'csv': 'text/csv',
    'txt': 'text/plain',
    'zip': 'application/zip',
    'rar': 'application/x-rar-compressed',
    'mp4': 'video/mp4',
    'avi': 'video/x-msvideo',
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'json': 'application/json',
    'xml': 'application/xml',
}

DIMENSION_KEYS = ('width', 'height', 'min_width', 'max_width', 'min_height', 'max_height')


def rule_name(token: Any) -> str:
    if not isinstance(token, str):
        return ''
    return token.split(':', 1)[0].strip().lower()


def rule_parameters(token: Any) -> str:
    if not isinstance(token, str) or ':' not in token:
        return ''
    return token.split(':', 1)[1]


def parse_int(value: str) -> Optional[int]:
    try:
        return int(float(value.strip()))
    except (ValueError, AttributeError):
        return None


@dataclass
class FileDimensions:
    width: Optional[int] = None
    height: Optional[int] = None
    min_width: Optional[int] = None
    max_width: Optional[int] = None
    min_height: Optional[int] = None
    max_height: Optional[int] = None
    ratio: Optional[str] = None

    @classmethod
    def parse(cls, parameters: str) -> 'FileDimensions':
        """Parse the parameter part of a dimensions: rule"""
        values: Dict[str, Any] = {}
        for pair in parameters.split(','):
            key, sep, value = pair.partition('=')
            if not sep:
                continue
            key, value = key.strip(), value.strip()
            if key == 'ratio':
                values['ratio'] = value
            elif key in DIMENSION_KEYS:
                values[key] = parse_int(value)
        return cls(**values)

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key in DIMENSION_KEYS + ('ratio',):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileDimensions':
        return cls(**{k: data.get(k) for k in DIMENSION_KEYS + ('ratio',)})


@dataclass
class FileUploadInfo:
    is_image: bool = False
    mimes: List[str] = field(default_factory=list)
    mime_types: List[str] = field(default_factory=list)
    min_size_kb: Optional[int] = None
    max_size_kb: Optional[int] = None
    dimensions: Optional[FileDimensions] = None
    multiple: bool = False

    @property
    def max_size_bytes(self) -> Optional[int]:
        return self.max_size_kb * 1024 if self.max_size_kb is not None else None

    @property
    def min_size_bytes(self) -> Optional[int]:
        return self.min_size_kb * 1024 if self.min_size_kb is not None else None

    def description(self) -> str:
        """Human readable summary used in parameter descriptions"""
        parts = []
        if self.mimes:
            parts.append('Allowed types: ' + ', '.join(self.mimes))
        elif self.is_image:
            parts.append('Image file')
        if self.max_size_kb is not None:
            parts.append(f"Max size: {format_size(self.max_size_kb)}")
        if self.min_size_kb is not None:
            parts.append(f"Min size: {format_size(self.min_size_kb)}")
        if self.dimensions is not None and not self.dimensions.is_empty():
            parts.append('Dimensions: ' + ', '.join(f"{k}={v}" for k, v in self.dimensions.to_dict().items()))
        return '. '.join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_image': self.is_image,
            'mimes': list(self.mimes),
            'mime_types': list(self.mime_types),
            'min_size_kb': self.min_size_kb,
            'max_size_kb': self.max_size_kb,
            'dimensions': self.dimensions.to_dict() if self.dimensions is not None else None,
            'multiple': self.multiple,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileUploadInfo':
        dimensions = data.get('dimensions')
        return cls(
            is_image=data.get('is_image', False),
            mimes=list(data.get('mimes') or []),
            mime_types=list(data.get('mime_types') or []),
            min_size_kb=data.get('min_size_kb'),
            max_size_kb=data.get('max_size_kb'),
            dimensions=FileDimensions.from_dict(dimensions) if dimensions is not None else None,
            multiple=data.get('multiple', False),
        )


def format_size(kilobytes: int) -> str:
    if kilobytes >= 1024 and kilobytes % 1024 == 0:
        return f"{kilobytes // 1024}MB"
    return f"{kilobytes}KB"


class FileUploadAnalyzer:
    """Detect file fields and collect their upload constraints"""

    def is_file_field(self, tokens: Iterable[Any]) -> bool:
        return any(rule_name(token) in FILE_RULES for token in tokens)

    def is_multiple(self, field_name: str) -> bool:
        return '.*' in field_name

    def analyze(self, tokens: List[Any], field_name: str = '') -> Optional[FileUploadInfo]:
        if not self.is_file_field(tokens):
            return None

        info = FileUploadInfo(multiple=self.is_multiple(field_name))
        for token in tokens:
            name = rule_name(token)
            parameters = rule_parameters(token)
            if name == 'image':
                info.is_image = True
            elif name == 'mimes':
                info.mimes = [m.strip() for m in parameters.split(',') if m.strip()]
            elif name == 'mimetypes':
                info.mime_types = [m.strip() for m in parameters.split(',') if m.strip()]
            elif name == 'max':
                info.max_size_kb = parse_int(parameters)
            elif name == 'min':
                info.min_size_kb = parse_int(parameters)
            elif name == 'size':
                info.min_size_kb = info.max_size_kb = parse_int(parameters)
            elif name == 'between':
                low, _, high = parameters.partition(',')
                info.min_size_kb, info.max_size_kb = parse_int(low), parse_int(high)
            elif name == 'dimensions':
                info.dimensions = FileDimensions.parse(parameters)

        if not info.mime_types:
            info.mime_types = self.infer_mime_types(info.mimes, info.is_image)
        logger.debug("File field %s: %s", field_name, info)
        return info

    def analyze_rules(self, rules: Dict[str, List[Any]]) -> Dict[str, FileUploadInfo]:
        result = {}
        for field_name, tokens in rules.items():
            info = self.analyze(tokens, field_name)
            if info is not None:
                result[field_name] = info
        return result

    def infer_mime_types(self, mimes: List[str], is_image: bool) -> List[str]:
        if mimes:
            return [MIME_TYPE_MAPPING.get(ext.lower(), 'application/octet-stream') for ext in mimes]
        if is_image:
            return list(IMAGE_MIME_TYPES)
        return []
