SERVER_NAME = "gsc-mcp-server"
SERVER_VERSION = "0.1.0"
