from .config import ServeConfig
from .server import run
from .services.files import FileService
from .utils.logging import info


def main(config: ServeConfig | None = None) -> None:
	"""Serves the configured root directory until interrupted."""
	config = config or ServeConfig.FromEnv()
	service = FileService(config.root, timeout=config.timeout)
	info("Starting file server", Root=str(service.root))
	run(
		service,
		host=config.host,
		port=config.port,
		logRequests=config.logRequests,
	)


if __name__ == "__main__":
	main()

# EOF
