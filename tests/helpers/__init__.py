from .redis import SERVER, FakeRedis, InMemRedisServer
from .setup import install_fake_redis
from .util import FlakyOp, RecordingRandom, ScriptedRandom, draft

__all__ = [
    "SERVER",
    "FakeRedis",
    "FlakyOp",
    "InMemRedisServer",
    "RecordingRandom",
    "ScriptedRandom",
    "draft",
    "install_fake_redis",
]
