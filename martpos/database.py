"""Database configuration and initialization."""
from contextlib import contextmanager

from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
BigIntegerPK = BigInteger().with_variant(Integer(), 'sqlite')

# Global session and engine
engine = None
db_session = None
SessionFactory = None


def _engine_options(database_uri, echo):
    options = {'echo': echo}
    if database_uri.startswith('sqlite'):
        # One shared connection for in-memory databases, usable across threads
        options['connect_args'] = {'check_same_thread': False}
        if database_uri in ('sqlite://', 'sqlite:///:memory:'):
            options['poolclass'] = StaticPool
    else:
        options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20,
        )
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session, SessionFactory

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db_session = scoped_session(SessionFactory)

    Base.query = db_session.query_property()

    if app.config.get('DB_CREATE_ALL'):
        import martpos.models  # noqa: F401  (register mappers)
        Base.metadata.create_all(bind=engine)

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get database engine."""
    return engine


@contextmanager
def session_scope():
    """
    Provide an independent session for work that must not share the
    request transaction (audit writes).
    """
    session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
