"""
Constants used across the game-matching engine.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Skill scoring
RANK_SCORES = {"S": 7, "A": 6, "B": 5, "C": 4, "D": 3, "E": 2, "F": 1}
DEFAULT_RANK_SCORE = 3.5  # Midpoint for players without a rank
GENDER_MULTIPLIERS = {"male": 1.2, "female": 0.9}
NEUTRAL_GENDER_MULTIPLIER = 1.0

# Session defaults
MIN_COURTS = 1
MAX_COURTS = 8
MIN_TEAM_SIZE = 2
DEFAULT_COURTS_COUNT = int(os.getenv("DEFAULT_COURTS_COUNT", "4"))
DEFAULT_TEAM_SIZE = int(os.getenv("DEFAULT_TEAM_SIZE", "4"))
DEFAULT_GAME_DURATION_MIN = int(os.getenv("GAME_DURATION_MIN", "15"))
DEFAULT_SESSION_NAME = "Game Matching"

# Teammate-diversity search
MAX_SWAP_PASSES = int(os.getenv("MAX_SWAP_PASSES", "20"))
OVERLAP_THRESHOLD = 2  # Teams at or below this overlap are left alone

# Settings keys shared with the store
SETTING_COURTS_COUNT = "courts_count"
SETTING_TEAM_SIZE = "team_size"
SETTING_GAME_DURATION = "game_duration_min"
SETTING_SESSION_NAME = "session_name"

# Admin role
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")  # Seeds the admin credential when none is stored
