from mysqld_exporter.service import run

if __name__ == '__main__':
    run()
