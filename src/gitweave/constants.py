import pathlib

gitweave_data_dir = pathlib.Path.home() / ".gitweave"

gitweave_config_dir = gitweave_data_dir / "config"
gitweave_package_dir = gitweave_data_dir / "package"

config_file_name = "gitweave.toml"
manifest_file_name = "gitweave.json"
spec_dir_name = "packages"

# The manager's own repository is never installed, removed or recorded by itself
self_repo = "gitweave/gitweave"

default_host = "github.com"
default_concurrency = 10

# Length diagnostics are cut to in reports
message_limit = 100
