import os


def _env_int(name, default):
	return int(os.environ.get(name, default))


class Config:
	def __getitem__(self, item):
		return getattr(self, item)
	SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'postgresql://user:postgres@db:5432/grassroots')
	REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379')
	DB_STATEMENT_TIMEOUT_MS = _env_int('DB_STATEMENT_TIMEOUT_MS', 5000)
	LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
	CORS_ORIGINS = [o for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',') if o]
	TOKEN_ALGO = 'HS256'

	# Feeds
	FEED_CACHE_TTL = _env_int('FEED_CACHE_TTL', 30)
	FEED_PAGE_SIZE = 20
	FEED_MAX_PAGE_SIZE = 100
	LOCATION_GRAPH_TTL = _env_int('LOCATION_GRAPH_TTL', 300)

	# Strategic plans
	PLAN_STAGE_DURATION_DAYS = {
		'draft': _env_int('PLAN_DRAFT_DAYS', 7),
		'discussion': _env_int('PLAN_DISCUSSION_DAYS', 14),
		'decision': _env_int('PLAN_DECISION_DAYS', 7),
		'review': _env_int('PLAN_REVIEW_DAYS', 7),
	}
	PLAN_MIN_POINTS_TO_START = _env_int('PLAN_MIN_POINTS_TO_START', 0)
	PLAN_WORKER_ENABLED = os.environ.get('PLAN_WORKER_ENABLED', 'true').lower() == 'true'
	PLAN_WORKER_INTERVAL = _env_int('PLAN_WORKER_INTERVAL', 300)
	PLAN_SWEEP_BATCH_SIZE = _env_int('PLAN_SWEEP_BATCH_SIZE', 200)
	PLAN_NAME_FILTER_ENABLED = os.environ.get('PLAN_NAME_FILTER_ENABLED', 'true').lower() == 'true'

class DevelopmentConfig(Config):
	DEV = True
	TOKEN_SECRET = os.environ.get('TOKEN_SECRET', 'abc')
	TOKEN_LIFESPAN_MIN = 60

class ProductionConfig(Config):
	DEV = False
	TOKEN_SECRET = os.environ.get('TOKEN_SECRET', 'put this somewhere secure and allow multiple to be active so it can be rotated')
	TOKEN_LIFESPAN_MIN = 60
