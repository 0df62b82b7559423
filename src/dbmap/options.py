from dataclasses import dataclass

from dbmap.strategy import get_available_dialects, get_strategy_class
from dbmap.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`

    Schema options:
    - schema_cache_ttl: Seconds to keep live table schemas cached; 0 (default)
      asks the database on every call
    - echo: Log every statement through SQLAlchemy's engine logger
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    echo: bool = False
    schema_cache_ttl: int = 0

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        if self.schema_cache_ttl < 0:
            raise ValueError('schema_cache_ttl cannot be negative')
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
