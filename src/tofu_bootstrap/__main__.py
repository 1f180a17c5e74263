from tofu_bootstrap.cli import main

raise SystemExit(main())
