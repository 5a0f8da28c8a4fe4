from pimesh_installer.installer import main


raise SystemExit(main())
