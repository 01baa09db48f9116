import logging
from os import environ

from neo4j import Driver, GraphDatabase

from blog.utils.singleton import SingletonMeta

logger = logging.getLogger(__name__)

CONSTRAINTS = (
    "CREATE CONSTRAINT user_id IF NOT EXISTS FOR (n:User) REQUIRE n.user_id IS UNIQUE",
    "CREATE CONSTRAINT user_email IF NOT EXISTS FOR (n:User) REQUIRE n.email IS UNIQUE",
    "CREATE CONSTRAINT post_id IF NOT EXISTS FOR (n:Post) REQUIRE n.post_id IS UNIQUE",
    "CREATE CONSTRAINT post_slug IF NOT EXISTS FOR (n:Post) REQUIRE n.slug IS UNIQUE",
    "CREATE CONSTRAINT category_id IF NOT EXISTS FOR (n:Category) REQUIRE n.category_id IS UNIQUE",
    "CREATE CONSTRAINT category_name IF NOT EXISTS FOR (n:Category) REQUIRE n.name IS UNIQUE",
    "CREATE CONSTRAINT category_slug IF NOT EXISTS FOR (n:Category) REQUIRE n.slug IS UNIQUE",
    "CREATE CONSTRAINT tag_id IF NOT EXISTS FOR (n:Tag) REQUIRE n.tag_id IS UNIQUE",
    "CREATE CONSTRAINT tag_name IF NOT EXISTS FOR (n:Tag) REQUIRE n.name IS UNIQUE",
    "CREATE CONSTRAINT tag_slug IF NOT EXISTS FOR (n:Tag) REQUIRE n.slug IS UNIQUE",
    "CREATE CONSTRAINT comment_id IF NOT EXISTS FOR (n:Comment) REQUIRE n.comment_id IS UNIQUE",
    "CREATE INDEX comment_post IF NOT EXISTS FOR (n:Comment) ON (n.post_id, n.created_at)",
    "CREATE INDEX comment_parent IF NOT EXISTS FOR (n:Comment) ON (n.parent_id)",
)


class DatabaseManager(metaclass=SingletonMeta):
    """Singleton manager for Neo4j database connections.

    This class manages the lifecycle of the Neo4j driver, ensuring only one
    driver (and so one connection pool) is shared by every service.

    Attributes:
        _driver: The Neo4j driver instance
        _uri: URI of the Neo4j database
        _auth: Tuple of username and password for authentication
        _database: Name of the Neo4j database to connect to
    """

    def __init__(self) -> None:
        self._driver: Driver | None = None
        self._uri: str = environ.get("NEO4J_URI", "bolt://localhost:7687")
        self._auth: tuple[str, str] = (
            environ.get("NEO4J_USER", "neo4j"),
            environ.get("NEO4J_PASSWORD", ""),
        )
        self._database: str = environ.get("NEO4J_DATABASE", "neo4j")

    def verify_connectivity(self) -> None:
        """Verify database connectivity with current credentials.

        Raises:
            neo4j.exceptions.ServiceUnavailable: If database is not reachable
            neo4j.exceptions.AuthError: If credentials are invalid
        """
        self.driver.verify_connectivity()
        logger.info("Connected to Neo4j at %s", self._uri)

    @property
    def driver(self) -> Driver:
        """Get or create the Neo4j driver instance.

        Returns:
            The Neo4j driver instance that can be used for database operations
        """
        if not self._driver:
            self._driver = GraphDatabase.driver(
                self._uri,
                auth=self._auth,
                max_connection_pool_size=10,  # Default is 100
                connection_timeout=30,  # Seconds
            )
        return self._driver

    @property
    def database(self) -> str:
        """Name of the Neo4j database to run sessions against."""
        return self._database

    def ensure_constraints(self) -> None:
        """Create the uniqueness constraints and indexes the services rely on.

        Every statement is idempotent, so this is safe to run on each startup.
        """
        with self.driver.session(database=self.database) as session:
            for statement in CONSTRAINTS:
                session.run(statement).consume()
        logger.info("Ensured %d constraints and indexes", len(CONSTRAINTS))

    def close(self) -> None:
        """Close the database connection.

        If no connection exists, this is a no-op.
        """
        if self._driver:
            self._driver.close()
            self._driver = None
