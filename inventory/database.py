"""Database engine and session management."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

Base = declarative_base()

# BIGINT primary keys; SQLite only autoincrements INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), 'sqlite')

engine = None
db_session = None


def init_db(app):
    """
    Create the engine and the thread-local session registry.

    Each request (and each worker thread) gets its own session; it is
    removed when the app context tears down.
    """
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,
    }
    if database_uri.startswith('sqlite'):
        # Movements commit from several threads; wait for the write lock
        engine_options['connect_args'] = {'check_same_thread': False, 'timeout': 30}
    else:
        engine_options['pool_size'] = app.config.get('DB_POOL_SIZE', 10)
        engine_options['max_overflow'] = app.config.get('DB_MAX_OVERFLOW', 20)
        engine_options['pool_recycle'] = app.config.get('DB_POOL_RECYCLE', 1800)

    engine = create_engine(database_uri, **engine_options)
    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        if exception:
            db_session.rollback()
        db_session.remove()


def get_engine():
    if engine is None:
        raise RuntimeError("Database not initialized. Call init_db(app) first.")
    return engine


def create_tables():
    """Create all tables known to the metadata (idempotent)."""
    import inventory.models  # noqa: F401
    Base.metadata.create_all(bind=get_engine())


def get_session():
    """Session bound to the current thread."""
    if db_session is None:
        raise RuntimeError("Database not initialized. Call init_db(app) first.")
    return db_session
