from smlbridge.cli import main

raise SystemExit(main())
