from ..settings import Settings


class DevelopmentSettings(Settings):
    debug: bool = True
    database_url: str = "duckdb://./data/orderpricing_dev.duckdb"
