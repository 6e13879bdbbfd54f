from service_proxy.app.main import ProxyService


def main():
    ProxyService().run()


if __name__ == "__main__":
    main()
