from laobusrouting.api import create_app, init_route_service
from laobusrouting.config import config

# Build the graph ONCE at startup
config.validate()
init_route_service(config.data_dir)

app = create_app()

if __name__ == '__main__':
    api_config = config.get_api_config()
    print(f"\n🚀 LaoBus routing running at: http://{api_config['host']}:{api_config['port']}\n")
    app.run(**api_config)
