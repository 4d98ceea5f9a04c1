"""Stream names used between the API process and the analytics worker."""

API_CALLS_STREAM = "api_calls"
SEARCH_ANALYTICS_STREAM = "search_analytics"

ANALYTICS_GROUP = "analytics-writers"
