import json
import os
from typing import List

from pydantic import ValidationError as SchemaError

from mytor.core.config import settings
from mytor.core.logger import logger
from mytor.models.db_models import BusinessProfile


def load_business_profiles(path: str = None) -> List[BusinessProfile]:
    """
    Loads business profiles (services, weekly windows, blocked dates) from a JSON file.
    Raises FileNotFoundError if the file is missing, ValueError if it is malformed.
    Returns: List of validated BusinessProfile.
    """
    path = path or settings.BUSINESS_CONFIG_PATH
    if not os.path.exists(path):
        logger.critical(f"❌ Business config file '{path}' was not found! The application cannot start.")
        raise FileNotFoundError(f"Business config file not found at {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Error parsing business config JSON: {e}")
        raise ValueError(f"Invalid JSON in business config file: {e}")

    raw = data.get("businesses", []) if isinstance(data, dict) else data
    try:
        profiles = [BusinessProfile.model_validate(item) for item in raw]
    except SchemaError as e:
        logger.critical(f"❌ Invalid business profile in '{path}': {e}")
        raise ValueError(f"Invalid business profile: {e}")

    logger.info(f"✅ Loaded {len(profiles)} business profiles: {', '.join(p.slug for p in profiles) or 'none'}")
    return profiles
