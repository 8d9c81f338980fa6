"""
Input validation utilities
"""
from typing import Any
import re


def validate_stage_number(stage: Any, final_stage: int = 6) -> bool:
    """Validate a canonical stage number (1..final_stage)"""
    try:
        number = int(str(stage).strip())
    except (ValueError, TypeError):
        return False
    return 1 <= number <= final_stage


def validate_occupancy_status(status: str) -> bool:
    """Validate tenant occupancy status"""
    return status in ['occupied', 'vacant', 'notice']


def validate_deal_status(status: str) -> bool:
    """Validate deal lifecycle status"""
    return status in ['incoming', 'processing', 'completed', 'rejected']


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe file operations"""
    # Remove or replace unsafe characters
    filename = re.sub(r'[<>:"/\\|?*]', '_', filename)
    # Remove leading/trailing spaces and dots
    filename = filename.strip('. ')
    # Limit length
    if len(filename) > 255:
        filename = filename[:255]

    return filename or 'unnamed'


def validate_file_extension(filename: str, allowed_extensions: list) -> bool:
    """Validate file extension"""
    if not filename or '.' not in filename:
        return False

    extension = filename.lower().split('.')[-1]
    return extension in [ext.lower().lstrip('.') for ext in allowed_extensions]
