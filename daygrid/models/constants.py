"""Constants for daygrid.

This module centralizes the default values used throughout the application.
"""


# Slot registry bootstrap (one hour per slot, working day)
DEFAULT_TIME_SLOTS = [
    "9:00 AM - 10:00 AM",
    "10:00 AM - 11:00 AM",
    "11:00 AM - 12:00 PM",
    "12:00 PM - 1:00 PM",
    "1:00 PM - 2:00 PM",
    "2:00 PM - 3:00 PM",
    "3:00 PM - 4:00 PM",
    "4:00 PM - 5:00 PM",
]

# Week grid
DAYS_IN_WEEK = 7
WEEK_STARTS_ON = 0  # Monday (date.weekday())

# Descriptions entered through the week grid are bounded
GRID_DESCRIPTION_MAX_LENGTH = 200

# Key separator for the composite (day, slot) key
KEY_SEPARATOR = "|"
