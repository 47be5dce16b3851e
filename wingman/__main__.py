from wingman.cli import main

raise SystemExit(main())
