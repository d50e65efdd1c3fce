from pg_mask.cli import main


if __name__ == "__main__":
    main()
